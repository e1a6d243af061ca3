"""
Entry point for ``python -m tissue_specificity``.
"""

from .cli import main

if __name__ == "__main__":
    main()
