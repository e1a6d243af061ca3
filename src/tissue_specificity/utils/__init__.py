"""Utility modules for tissue specificity scoring."""

from .seed import get_rng

__all__ = ["get_rng"]
