"""
Tissue Specificity Scoring

Main entry point tying the steps together:

    1. Validate the gene x tissue expression matrix
    2. Quantile-bin every tissue independently
    3. Compute tau for every gene from its bins
    4. Join gene metadata (symbol, ...) by identifier
    5. Filter to a gene subset and/or a minimum max-expression floor
    6. Rank by tau (stable; degenerate genes excluded or placed last)

The result table has one row per gene with columns
``gene_id, symbol, tau, tau_status, max_expression, max_tissue``.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from .binning import DEFAULT_NUM_BINS, DEFAULT_THRESHOLD, bin_expression_matrix
from .expression import validate_expression_matrix
from .tau import TauStatus, compute_tau

logger = logging.getLogger(__name__)

RESULT_COLUMNS = ["gene_id", "symbol", "tau", "tau_status", "max_expression", "max_tissue"]

TISSUE_SPECIFIC_TAU = 0.8
HIGHLY_SPECIFIC_TAU = 0.9
HOUSEKEEPING_TAU = 0.2


class UnmatchedPolicy(Enum):
    """What to do with genes that have no metadata row."""

    FAIL = "fail"
    DROP = "drop"
    KEEP = "keep"


class MetadataJoinError(ValueError):
    """Raised when gene metadata cannot be joined one-to-one."""


def _check_gene_subset(gene_subset: Optional[Sequence[str]]) -> None:
    if isinstance(gene_subset, str):
        raise TypeError(
            f"gene_subset must be a list of gene identifiers, not a string: {gene_subset!r}. "
            f"Use gene_subset=[{gene_subset!r}]"
        )


@dataclass
class ScoringOptions:
    """Named options for :func:`score_tissue_specificity`."""

    threshold: float = DEFAULT_THRESHOLD
    num_bins: int = DEFAULT_NUM_BINS
    min_max_expression: Optional[float] = None
    gene_subset: Optional[List[str]] = None
    unmatched_policy: UnmatchedPolicy = UnmatchedPolicy.DROP
    symbol_column: str = "symbol"
    retain_degenerate: bool = False
    ascending: bool = False
    show_progress: bool = False

    def __post_init__(self):
        if isinstance(self.unmatched_policy, str):
            self.unmatched_policy = UnmatchedPolicy(self.unmatched_policy)
        _check_gene_subset(self.gene_subset)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "threshold": self.threshold,
            "num_bins": self.num_bins,
            "min_max_expression": self.min_max_expression,
            "n_gene_subset": len(self.gene_subset) if self.gene_subset is not None else None,
            "unmatched_policy": self.unmatched_policy.value,
            "symbol_column": self.symbol_column,
            "retain_degenerate": self.retain_degenerate,
            "ascending": self.ascending,
        }


@dataclass
class JoinReport:
    """Outcome of joining scores to gene metadata."""

    policy: UnmatchedPolicy
    n_genes: int = 0
    n_matched: int = 0
    unmatched_genes: List[str] = field(default_factory=list)

    @property
    def n_unmatched(self) -> int:
        return len(self.unmatched_genes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "policy": self.policy.value,
            "n_genes": self.n_genes,
            "n_matched": self.n_matched,
            "n_unmatched": self.n_unmatched,
            "unmatched_examples": list(self.unmatched_genes[:10]),
        }


@dataclass
class FilterReport:
    """Genes removed by each post-scoring filter."""

    n_before: int = 0
    n_outside_subset: int = 0
    n_subset_not_found: int = 0
    n_below_min_expression: int = 0
    n_degenerate_excluded: int = 0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_before": self.n_before,
            "n_outside_subset": self.n_outside_subset,
            "n_subset_not_found": self.n_subset_not_found,
            "n_below_min_expression": self.n_below_min_expression,
            "n_degenerate_excluded": self.n_degenerate_excluded,
        }


@dataclass
class TissueSpecificityResult:
    """Result of scoring a gene x tissue expression matrix."""

    table: pd.DataFrame
    bins: pd.DataFrame
    options: ScoringOptions
    n_genes_scored: int = 0
    n_tissues: int = 0
    join_report: Optional[JoinReport] = None
    filter_report: FilterReport = field(default_factory=FilterReport)

    @property
    def n_degenerate(self) -> int:
        return int((self.table["tau_status"] != TauStatus.SCORED.value).sum())

    def specificity_summary(self) -> Dict[str, int]:
        """Count genes in the conventional tau classes."""
        scored = self.table.loc[self.table["tau_status"] == TauStatus.SCORED.value, "tau"]
        return {
            "n_genes": len(self.table),
            "tissue_specific": int((scored > TISSUE_SPECIFIC_TAU).sum()),
            "highly_specific": int((scored > HIGHLY_SPECIFIC_TAU).sum()),
            "housekeeping": int((scored < HOUSEKEEPING_TAU).sum()),
            "degenerate": self.n_degenerate,
        }

    def top_genes(self, n: int = 10) -> pd.DataFrame:
        """First n scored rows of the ranked table."""
        scored = self.table[self.table["tau_status"] == TauStatus.SCORED.value]
        return scored.head(n)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_genes_scored": self.n_genes_scored,
            "n_tissues": self.n_tissues,
            "n_genes_reported": len(self.table),
            "options": self.options.to_dict(),
            "specificity": self.specificity_summary(),
            "join": self.join_report.to_dict() if self.join_report else {},
            "filters": self.filter_report.to_dict(),
        }

    def format_report(self) -> str:
        """Generate a human-readable report."""
        summary = self.specificity_summary()
        lines = [
            "## Tissue Specificity Report",
            "",
            f"**Genes scored:** {self.n_genes_scored}",
            f"**Tissues:** {self.n_tissues}",
            f"**Genes reported:** {summary['n_genes']}",
            f"**Threshold:** {self.options.threshold:g}",
            f"**Bins:** {self.options.num_bins}",
            "",
            "| Class | Genes |",
            "|-------|-------|",
            f"| tau > {HIGHLY_SPECIFIC_TAU} (highly specific) | {summary['highly_specific']} |",
            f"| tau > {TISSUE_SPECIFIC_TAU} (tissue-specific) | {summary['tissue_specific']} |",
            f"| tau < {HOUSEKEEPING_TAU} (housekeeping) | {summary['housekeeping']} |",
            f"| undefined tau (reported) | {summary['degenerate']} |",
            f"| undefined tau (excluded) | {self.filter_report.n_degenerate_excluded} |",
            "",
        ]
        if self.join_report and self.join_report.n_unmatched:
            lines.append(
                f"**Metadata:** {self.join_report.n_unmatched} gene(s) without metadata "
                f"({self.join_report.policy.value})"
            )
            lines.append("")

        top = self.top_genes(10)
        if len(top):
            lines.extend(
                [
                    "### Top Genes",
                    "",
                    "| Gene | Symbol | Tau | Max tissue |",
                    "|------|--------|-----|------------|",
                ]
            )
            for _, row in top.iterrows():
                lines.append(
                    f"| {row['gene_id']} | {row['symbol']} | {row['tau']:.3f} | "
                    f"{row['max_tissue']} |"
                )
            lines.append("")
        return "\n".join(lines)

    def get_citations(self) -> List[str]:
        return [
            "Yanai I, et al. Genome-wide midrange transcription profiles reveal "
            "expression level relationships in human tissue specification. "
            "Bioinformatics. 2005;21(5):650-659.",
            "Kryuchkova-Mostacci N, Robinson-Rechavi M. A benchmark of gene "
            "expression tissue-specificity metrics. Brief Bioinform. "
            "2017;18(2):205-214.",
        ]


# ---------------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------------


def max_expression_by_gene(expression: pd.DataFrame) -> pd.DataFrame:
    """
    Max raw expression per gene and the tissue where it occurs.

    Ties go to the first tissue in column order. Genes missing in every
    tissue get NaN / an empty tissue.
    """
    values = expression.to_numpy(dtype=float)
    all_missing = np.isnan(values).all(axis=1)

    max_values = np.full(values.shape[0], np.nan)
    max_tissue = np.full(values.shape[0], "", dtype=object)
    present = ~all_missing
    if present.any():
        filled = np.where(np.isnan(values[present]), -np.inf, values[present])
        idx = filled.argmax(axis=1)
        max_values[present] = filled[np.arange(len(idx)), idx]
        max_tissue[present] = np.asarray(expression.columns, dtype=object)[idx]

    return pd.DataFrame(
        {"max_expression": max_values, "max_tissue": max_tissue},
        index=expression.index,
    )


def join_gene_metadata(
    table: pd.DataFrame,
    metadata: Optional[pd.DataFrame],
    symbol_column: str = "symbol",
    policy: UnmatchedPolicy = UnmatchedPolicy.DROP,
) -> Tuple[pd.DataFrame, Optional[JoinReport]]:
    """
    Attach ``symbol`` (and any other metadata columns) by gene identifier.

    Args:
        table: Score table with a ``gene_id`` column.
        metadata: DataFrame indexed by gene identifier, or None.
        symbol_column: Metadata column holding the gene symbol.
        policy: Handling of genes with no metadata row.

    Returns:
        (joined table, JoinReport or None when no metadata was given)

    Raises:
        MetadataJoinError: Duplicate metadata identifiers, a missing symbol
            column, or unmatched genes under ``UnmatchedPolicy.FAIL``.
    """
    if metadata is None:
        out = table.copy()
        out["symbol"] = ""
        return out, None

    if symbol_column not in metadata.columns:
        raise MetadataJoinError(
            f"Symbol column '{symbol_column}' not found in gene metadata. "
            f"Available: {', '.join(map(str, metadata.columns[:10]))}"
        )
    metadata = metadata.copy()
    metadata.index = metadata.index.astype(str)
    dup = metadata.index[metadata.index.duplicated()].unique()
    if len(dup):
        raise MetadataJoinError(
            f"Gene metadata has {len(dup)} duplicated identifier(s): "
            f"{[str(g) for g in dup[:5]]}. The join must be one-to-one."
        )

    matched = table["gene_id"].isin(metadata.index)
    report = JoinReport(
        policy=policy,
        n_genes=len(table),
        n_matched=int(matched.sum()),
        unmatched_genes=table.loc[~matched, "gene_id"].astype(str).tolist(),
    )

    if report.n_unmatched:
        message = (
            f"{report.n_unmatched} of {report.n_genes} gene(s) have no metadata: "
            f"{report.unmatched_genes[:5]}{'...' if report.n_unmatched > 5 else ''}"
        )
        if policy is UnmatchedPolicy.FAIL:
            raise MetadataJoinError(message)
        if policy is UnmatchedPolicy.DROP:
            logger.warning(f"[Scoring] Dropping {message}")
        else:
            logger.warning(f"[Scoring] Keeping {message}")

    clashing = [c for c in RESULT_COLUMNS if c in metadata.columns and c != symbol_column]
    extra = metadata.drop(columns=clashing).rename(columns={symbol_column: "symbol"})
    joined = table.join(extra, on="gene_id", how="left")
    joined["symbol"] = joined["symbol"].fillna("").astype(str)

    if policy is UnmatchedPolicy.DROP:
        joined = joined[matched.to_numpy()]

    return joined, report


def filter_genes(
    table: pd.DataFrame,
    gene_subset: Optional[Sequence[str]] = None,
    min_max_expression: Optional[float] = None,
    report: Optional[FilterReport] = None,
) -> pd.DataFrame:
    """
    Keep genes in ``gene_subset`` whose max expression reaches the floor.

    Genes whose max expression is NaN (missing everywhere) fail the floor.
    Counts of removed genes are written to ``report`` when given.
    """
    _check_gene_subset(gene_subset)
    report = report if report is not None else FilterReport()
    report.n_before = len(table)
    out = table

    if gene_subset is not None:
        subset = set(map(str, gene_subset))
        present = set(out["gene_id"].astype(str))
        report.n_subset_not_found = len(subset - present)
        if report.n_subset_not_found:
            logger.warning(
                f"[Scoring] {report.n_subset_not_found} gene(s) in the requested "
                f"subset are not in the expression matrix"
            )
        keep = out["gene_id"].astype(str).isin(subset)
        report.n_outside_subset = int((~keep).sum())
        out = out[keep]

    if min_max_expression is not None:
        keep = out["max_expression"] >= min_max_expression
        report.n_below_min_expression = int((~keep).sum())
        if report.n_below_min_expression:
            logger.info(
                f"[Scoring] Removed {report.n_below_min_expression} gene(s) with max "
                f"expression below {min_max_expression:g}"
            )
        out = out[keep]

    return out


def rank_genes(
    table: pd.DataFrame,
    ascending: bool = False,
    retain_degenerate: bool = False,
) -> pd.DataFrame:
    """
    Sort genes by tau.

    Scored genes are sorted by tau (descending by default) with a stable
    sort so that ties keep their input order. Genes with a degenerate tau
    are dropped, or appended after all scored genes in input order when
    ``retain_degenerate`` is set.
    """
    scored_mask = table["tau_status"] == TauStatus.SCORED.value
    scored = table[scored_mask].sort_values("tau", ascending=ascending, kind="stable")
    if not retain_degenerate:
        return scored.reset_index(drop=True)
    return pd.concat([scored, table[~scored_mask]]).reset_index(drop=True)


def write_results(table: pd.DataFrame, path: Union[str, Path]) -> Path:
    """Write a result table; tab-separated for .tsv/.txt, comma otherwise."""
    out_path = Path(path)
    sep = "\t" if out_path.suffix.lower() in (".tsv", ".txt") else ","
    out_path.parent.mkdir(parents=True, exist_ok=True)
    table.to_csv(out_path, sep=sep, index=False, float_format="%.6g")
    logger.info(f"[Scoring] Wrote {len(table)} genes to {out_path}")
    return out_path


# ---------------------------------------------------------------------------
# Main entry point
# ---------------------------------------------------------------------------


def score_tissue_specificity(
    expression: pd.DataFrame,
    gene_metadata: Optional[pd.DataFrame] = None,
    options: Optional[ScoringOptions] = None,
) -> TissueSpecificityResult:
    """
    Compute, annotate, filter and rank tau for every gene.

    Args:
        expression: Gene x tissue matrix (genes as rows). Not modified.
        gene_metadata: Optional metadata indexed by gene identifier.
        options: Scoring options; defaults to ``ScoringOptions()``.

    Returns:
        TissueSpecificityResult with the ranked table and bin matrix.

    Raises:
        MalformedExpressionError: If the matrix is invalid.
        MetadataJoinError: If the metadata join fails under its policy.
    """
    options = options or ScoringOptions()
    matrix = validate_expression_matrix(expression)

    logger.info(
        f"[Scoring] Scoring {matrix.shape[0]} genes across {matrix.shape[1]} tissues"
    )

    bins = bin_expression_matrix(
        matrix,
        threshold=options.threshold,
        num_bins=options.num_bins,
        show_progress=options.show_progress,
    )
    tau_frame = compute_tau(bins)
    maxima = max_expression_by_gene(matrix)

    table = pd.concat([tau_frame, maxima], axis=1)
    table.insert(0, "gene_id", [str(g) for g in matrix.index])
    table = table.reset_index(drop=True)

    table, join_report = join_gene_metadata(
        table,
        gene_metadata,
        symbol_column=options.symbol_column,
        policy=options.unmatched_policy,
    )

    filter_report = FilterReport()
    table = filter_genes(
        table,
        gene_subset=options.gene_subset,
        min_max_expression=options.min_max_expression,
        report=filter_report,
    )

    filter_report.n_degenerate_excluded = (
        0
        if options.retain_degenerate
        else int((table["tau_status"] != TauStatus.SCORED.value).sum())
    )
    table = rank_genes(
        table,
        ascending=options.ascending,
        retain_degenerate=options.retain_degenerate,
    )

    extra_columns = [c for c in table.columns if c not in RESULT_COLUMNS]
    table = table[RESULT_COLUMNS + extra_columns]

    result = TissueSpecificityResult(
        table=table,
        bins=bins,
        options=options,
        n_genes_scored=matrix.shape[0],
        n_tissues=matrix.shape[1],
        join_report=join_report,
        filter_report=filter_report,
    )

    summary = result.specificity_summary()
    logger.info(
        f"[Scoring] Reported {summary['n_genes']} genes: "
        f"{summary['tissue_specific']} tissue-specific (tau > {TISSUE_SPECIFIC_TAU}), "
        f"{summary['housekeeping']} housekeeping (tau < {HOUSEKEEPING_TAU}), "
        f"{filter_report.n_degenerate_excluded} undefined tau excluded"
    )
    return result
