"""
Per-Tissue Quantile Binning

Discretizes a gene x tissue expression matrix into integer bins, one tissue
(column) at a time:

    - bin 0: missing, or at/below the noise threshold
    - bins 1..num_bins: equal-population quantile buckets computed over the
      values strictly above the threshold in that tissue

Cut points use the continuous linear-interpolation quantile estimator
(numpy ``method="linear"``, R ``quantile(type = 7)``). A detected value v is
assigned the smallest bin k with ``v <= cut[k]``; when several cut points
coincide (fewer distinct detected values than bins) the lower bin wins.
"""

import logging
from typing import Sequence, Union

import numpy as np
import pandas as pd
from tqdm import tqdm

logger = logging.getLogger(__name__)

DEFAULT_THRESHOLD = 2.0 ** -5
DEFAULT_NUM_BINS = 10

ArrayLike = Union[pd.Series, np.ndarray, Sequence[float]]


def _check_binning_params(threshold: float, num_bins: int) -> None:
    if isinstance(num_bins, bool) or not isinstance(num_bins, (int, np.integer)):
        raise TypeError(f"num_bins must be an integer, got {type(num_bins).__name__}")
    if num_bins < 1:
        raise ValueError(f"num_bins must be >= 1, got {num_bins}")
    if threshold is None or np.isnan(threshold):
        raise ValueError("threshold must be a number, got NaN/None")


def quantile_cut_points(
    detected: np.ndarray, num_bins: int = DEFAULT_NUM_BINS
) -> np.ndarray:
    """
    Quantile cut points of the detected values at 0, 1/num_bins, ..., 1.

    Returns an array of length ``num_bins + 1``; ``cut[0]`` is the minimum
    and ``cut[-1]`` the maximum of ``detected``.
    """
    probs = np.linspace(0.0, 1.0, num_bins + 1)
    cuts = np.quantile(detected, probs, method="linear")
    # searchsorted needs non-decreasing cut points
    return np.maximum.accumulate(cuts)


def quantile_bin(
    column: ArrayLike,
    threshold: float = DEFAULT_THRESHOLD,
    num_bins: int = DEFAULT_NUM_BINS,
) -> Union[pd.Series, np.ndarray]:
    """
    Bin one tissue's expression values into equal-population quantile bins.

    Args:
        column: Expression values for a single tissue. NaN marks a missing
            value; it keeps its position and receives bin 0.
        threshold: Noise floor in the same units as ``column``. Only values
            strictly greater than it are binned into 1..num_bins.
        num_bins: Number of quantile bins for detected values.

    Returns:
        Integer bins of the same length as ``column``. A Series input yields
        a Series with the same index and name; anything else an ndarray.
    """
    _check_binning_params(threshold, num_bins)

    if isinstance(column, pd.Series):
        values = column.to_numpy(dtype=float)
    else:
        values = np.asarray(column, dtype=float)
    if values.ndim != 1:
        raise ValueError(f"quantile_bin expects a 1-D column, got shape {values.shape}")

    bins = np.zeros(values.shape[0], dtype=np.int64)
    detected_mask = ~np.isnan(values) & (values > threshold)

    if detected_mask.any():
        detected = values[detected_mask]
        cuts = quantile_cut_points(detected, num_bins)
        # First upper cut point >= v; ties between equal cut points go low
        idx = np.searchsorted(cuts[1:], detected, side="left") + 1
        bins[detected_mask] = np.clip(idx, 1, num_bins)

    if isinstance(column, pd.Series):
        return pd.Series(bins, index=column.index, name=column.name)
    return bins


def bin_expression_matrix(
    expression: pd.DataFrame,
    threshold: float = DEFAULT_THRESHOLD,
    num_bins: int = DEFAULT_NUM_BINS,
    show_progress: bool = False,
) -> pd.DataFrame:
    """
    Apply :func:`quantile_bin` to every tissue (column) independently.

    Args:
        expression: Gene x tissue matrix (genes as rows).
        threshold: Noise floor shared by all tissues.
        num_bins: Number of quantile bins.
        show_progress: Show a tqdm progress bar over tissues.

    Returns:
        Integer DataFrame with the same index and columns as ``expression``.
    """
    _check_binning_params(threshold, num_bins)

    binned = {}
    undetected_tissues = []
    for tissue in tqdm(
        expression.columns,
        desc="Binning tissues",
        total=expression.shape[1],
        disable=not show_progress,
    ):
        tissue_bins = quantile_bin(expression[tissue], threshold, num_bins)
        if not (tissue_bins > 0).any():
            undetected_tissues.append(tissue)
        binned[tissue] = tissue_bins.to_numpy()

    bins = pd.DataFrame(binned, index=expression.index, columns=expression.columns)
    bins = bins.astype(np.int64)

    if undetected_tissues:
        logger.warning(
            f"[Binning] {len(undetected_tissues)} tissue(s) have no values above "
            f"threshold {threshold:g}: {undetected_tissues[:5]}"
            f"{'...' if len(undetected_tissues) > 5 else ''}"
        )

    logger.info(
        f"[Binning] Binned {bins.shape[0]} genes x {bins.shape[1]} tissues "
        f"into {num_bins} quantile bins (threshold={threshold:g})"
    )
    return bins
