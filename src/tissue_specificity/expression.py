"""
Expression Matrix Loading and Validation

Loads gene x tissue expression tables (GTEx / HPA / TCGA style median TPM
tables) and gene metadata, and validates them before any binning happens.

A valid matrix:
    - is rectangular (every row has as many fields as the header)
    - has unique gene identifiers (rows) and unique tissue names (columns)
    - contains only numeric cells, >= 0 and finite; empty cells are missing

Anything else raises MalformedExpressionError listing what is wrong and how
to fix it.
"""

import csv
import gzip
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)

_MAX_REPORTED = 5
_GCT_PREAMBLE_LINES = 2

# Missing-value tokens for expression cells; identifiers are never parsed as NA
_NA_VALUES = ["", "NA", "N/A", "n/a", "NaN", "nan", "-nan", "null", "NULL", "<NA>", "#N/A"]


class MalformedExpressionError(ValueError):
    """Raised when an expression matrix cannot be scored as-is."""

    def __init__(
        self,
        message: str,
        problems: Optional[List[str]] = None,
        suggestions: Optional[List[str]] = None,
    ):
        self.problems = problems or []
        self.suggestions = suggestions or []
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        lines = [message]
        if self.problems:
            lines.append("")
            for p in self.problems[:_MAX_REPORTED]:
                lines.append(f"  - {p}")
            if len(self.problems) > _MAX_REPORTED:
                lines.append(f"  - ... and {len(self.problems) - _MAX_REPORTED} more")
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, s in enumerate(self.suggestions, 1):
                lines.append(f"  {i}. {s}")
        return "\n".join(lines)


@dataclass
class ExpressionDataQualityReport:
    """Summary of an expression matrix after loading and validation."""

    n_genes: int = 0
    n_tissues: int = 0
    n_missing_values: int = 0
    n_all_missing_genes: int = 0
    n_zero_genes: int = 0
    source: str = ""
    separator: str = ""
    warnings: List[str] = field(default_factory=list)

    @property
    def missing_fraction(self) -> float:
        total = self.n_genes * self.n_tissues
        if total == 0:
            return 0.0
        return self.n_missing_values / total

    def add_warning(self, message: str) -> None:
        if message not in self.warnings:
            self.warnings.append(message)
            logger.warning(f"[Expression] {message}")

    def to_dict(self) -> Dict[str, Any]:
        return {
            "n_genes": self.n_genes,
            "n_tissues": self.n_tissues,
            "n_missing_values": self.n_missing_values,
            "missing_fraction": round(float(self.missing_fraction), 4),
            "n_all_missing_genes": self.n_all_missing_genes,
            "n_zero_genes": self.n_zero_genes,
            "source": self.source,
            "separator": "tab" if self.separator == "\t" else self.separator,
            "warnings": list(self.warnings),
        }

    def summary(self) -> str:
        """Generate human-readable summary."""
        lines = [
            "Expression Data Quality",
            "=" * 40,
            f"Genes: {self.n_genes}",
            f"Tissues: {self.n_tissues}",
            f"Missing values: {self.n_missing_values} ({self.missing_fraction:.1%})",
            f"Genes missing in every tissue: {self.n_all_missing_genes}",
            f"Genes zero in every tissue: {self.n_zero_genes}",
        ]
        if self.warnings:
            lines.extend(["", "Warnings:"])
            for w in self.warnings:
                lines.append(f"  - {w}")
        return "\n".join(lines)


# ---------------------------------------------------------------------------
# Validation
# ---------------------------------------------------------------------------


def _duplicates(labels: pd.Index) -> List[str]:
    return [str(label) for label in labels[labels.duplicated()].unique()]


def validate_expression_matrix(expression: pd.DataFrame) -> pd.DataFrame:
    """
    Validate a gene x tissue matrix and return a float copy of it.

    Args:
        expression: DataFrame with genes as rows and tissues as columns.

    Returns:
        A new float64 DataFrame; the input is not modified.

    Raises:
        MalformedExpressionError: If the matrix is empty, has duplicate
            labels, or contains non-numeric, negative or infinite cells.
    """
    if expression.shape[0] == 0 or expression.shape[1] == 0:
        raise MalformedExpressionError(
            f"Expression matrix is empty ({expression.shape[0]} genes x "
            f"{expression.shape[1]} tissues)",
            suggestions=["Check the file has a header row and at least one gene row"],
        )

    problems = []
    dup_genes = _duplicates(expression.index)
    if dup_genes:
        problems.append(f"Duplicate gene identifiers: {dup_genes[:_MAX_REPORTED]}")
    dup_tissues = _duplicates(expression.columns)
    if dup_tissues:
        problems.append(f"Duplicate tissue columns: {dup_tissues[:_MAX_REPORTED]}")
    if problems:
        raise MalformedExpressionError(
            "Expression matrix labels are not unique",
            problems=problems,
            suggestions=[
                "Collapse duplicate genes (e.g. sum transcripts per gene) before scoring",
                "Collapse replicate samples into tissues with collapse_replicates()",
            ],
        )

    numeric = {}
    for tissue in expression.columns:
        original = expression[tissue]
        converted = pd.to_numeric(original, errors="coerce")
        bad = converted.isna() & original.notna()
        for gene in original.index[bad][:_MAX_REPORTED]:
            problems.append(
                f"Non-numeric value {original[gene]!r} at gene '{gene}', tissue '{tissue}'"
            )
        numeric[tissue] = converted.astype(float)
    if problems:
        raise MalformedExpressionError(
            "Expression matrix contains non-numeric cells",
            problems=problems,
            suggestions=[
                "Remove annotation columns other than the gene identifier",
                "Use an empty cell for missing values",
            ],
        )

    matrix = pd.DataFrame(numeric, index=expression.index, columns=expression.columns)
    values = matrix.to_numpy()

    for label, mask in (
        ("Negative", values < 0),
        ("Infinite", np.isinf(values)),
    ):
        if mask.any():
            rows, cols = np.nonzero(mask)
            for r, c in list(zip(rows, cols))[:_MAX_REPORTED]:
                problems.append(
                    f"{label} value {values[r, c]} at gene '{matrix.index[r]}', "
                    f"tissue '{matrix.columns[c]}'"
                )
            if len(rows) > _MAX_REPORTED:
                problems.append(f"{len(rows)} {label.lower()} values in total")

    if problems:
        raise MalformedExpressionError(
            "Expression matrix contains values outside [0, inf)",
            problems=problems,
            suggestions=[
                "Provide linear-scale expression (TPM, CPM, normalized counts)",
                "Undo log transforms that produce negative values before scoring",
            ],
        )

    return matrix


def describe_expression_matrix(
    expression: pd.DataFrame, source: str = "", separator: str = ""
) -> ExpressionDataQualityReport:
    """Build a quality report for an already validated matrix."""
    missing = expression.isna()
    report = ExpressionDataQualityReport(
        n_genes=expression.shape[0],
        n_tissues=expression.shape[1],
        n_missing_values=int(missing.to_numpy().sum()),
        n_all_missing_genes=int(missing.all(axis=1).sum()),
        n_zero_genes=int((expression.fillna(0) == 0).all(axis=1).sum()),
        source=source,
        separator=separator,
    )
    if report.n_tissues == 1:
        report.add_warning("Only one tissue column; tau is undefined for every gene")
    if report.n_all_missing_genes:
        report.add_warning(f"{report.n_all_missing_genes} gene(s) are missing in every tissue")
    if report.missing_fraction > 0.1:
        report.add_warning(f"{report.missing_fraction:.1%} of values are missing")
    return report


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def detect_separator(path: Union[str, Path]) -> str:
    """Tab for .tsv/.txt/.gct (optionally gzipped), comma otherwise."""
    suffixes = [s.lower() for s in Path(path).suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    if suffixes and suffixes[-1] in (".tsv", ".txt", ".gct"):
        return "\t"
    return ","


def is_gct(path: Union[str, Path]) -> bool:
    """True for GCT tables (.gct or .gct.gz), e.g. GTEx median TPM files."""
    suffixes = [s.lower() for s in Path(path).suffixes]
    if suffixes and suffixes[-1] == ".gz":
        suffixes = suffixes[:-1]
    return bool(suffixes) and suffixes[-1] == ".gct"


def _open_text(path: Path):
    if path.suffix.lower() == ".gz":
        return gzip.open(path, "rt", newline="")
    return open(path, "r", newline="")


def _ragged_rows(path: Path, sep: str, skip: int = 0) -> List[str]:
    """Describe rows whose field count differs from the header's."""
    problems = []
    with _open_text(path) as f:
        reader = csv.reader(f, delimiter=sep)
        n_header = None
        for row in reader:
            if reader.line_num <= skip:
                continue
            if not row or all(not cell.strip() for cell in row):
                continue
            if n_header is None:
                n_header = len(row)
                continue
            if len(row) != n_header:
                problems.append(
                    f"Line {reader.line_num}: expected {n_header} fields, got {len(row)}"
                )
    return problems


def load_expression_matrix(
    path: Union[str, Path],
    gene_column: Optional[str] = None,
    sep: Optional[str] = None,
) -> Tuple[pd.DataFrame, ExpressionDataQualityReport]:
    """
    Load and validate a gene x tissue expression table.

    GCT files (``#1.2`` version line, dimensions line, then a ``Name`` /
    ``Description`` header) are read past their preamble and their
    ``Description`` column is dropped.

    Args:
        path: CSV/TSV/GCT file (optionally gzipped). Genes are rows.
        gene_column: Column holding gene identifiers. Defaults to the first
            column.
        sep: Field separator. Detected from the file suffix if omitted.

    Returns:
        Tuple of (float matrix [genes x tissues], quality report).

    Raises:
        FileNotFoundError: If the file does not exist.
        MalformedExpressionError: If the table is ragged, empty, or contains
            invalid cells.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Expression file not found: {path}")

    sep = sep or detect_separator(file_path)
    gct = is_gct(file_path)
    skiprows = _GCT_PREAMBLE_LINES if gct else 0

    ragged = _ragged_rows(file_path, sep, skip=skiprows)
    if ragged:
        raise MalformedExpressionError(
            f"Expression file is not rectangular: {path}",
            problems=ragged,
            suggestions=[
                "Check every row has one identifier column plus one value per tissue",
                f"Check the separator ({'tab' if sep == chr(9) else repr(sep)}) matches the file",
            ],
        )

    columns = pd.read_csv(file_path, sep=sep, skiprows=skiprows, nrows=0).columns
    if len(columns) == 0:
        raise MalformedExpressionError(f"Expression file has no columns: {path}")

    id_column = gene_column or columns[0]
    if id_column not in columns:
        raise MalformedExpressionError(
            f"Gene column '{id_column}' not found in {path}",
            suggestions=[f"Use one of: {', '.join(map(str, columns[:10]))}"],
        )

    # Identifiers such as "NA" are genes, not missing values
    df = pd.read_csv(
        file_path,
        sep=sep,
        skiprows=skiprows,
        dtype={id_column: str},
        keep_default_na=False,
        na_values={c: _NA_VALUES for c in columns if c != id_column},
    )
    if gct and "Description" in df.columns and id_column != "Description":
        df = df.drop(columns=["Description"])
    df = df.set_index(id_column)
    df.index.name = "gene_id"

    matrix = validate_expression_matrix(df)
    report = describe_expression_matrix(matrix, source=str(file_path), separator=sep)

    logger.info(
        f"[Expression] Loaded {report.n_genes} genes x {report.n_tissues} tissues "
        f"from {file_path.name}"
    )
    return matrix, report


def load_gene_metadata(
    path: Union[str, Path],
    id_column: Optional[str] = None,
    sep: Optional[str] = None,
) -> pd.DataFrame:
    """
    Load a gene metadata table indexed by gene identifier.

    Args:
        path: CSV/TSV file with an identifier column and descriptive fields
            (symbol, biotype, ...).
        id_column: Identifier column. Defaults to the first column.
        sep: Field separator. Detected from the file suffix if omitted.
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Gene metadata file not found: {path}")

    sep = sep or detect_separator(file_path)
    metadata = pd.read_csv(file_path, sep=sep, dtype=str, keep_default_na=False)
    id_column = id_column or metadata.columns[0]
    if id_column not in metadata.columns:
        raise ValueError(
            f"Metadata id column '{id_column}' not found in {path}. "
            f"Available: {', '.join(metadata.columns[:10])}"
        )
    metadata = metadata.set_index(id_column)
    metadata.index.name = "gene_id"
    logger.info(f"[Expression] Loaded metadata for {len(metadata)} genes from {file_path.name}")
    return metadata


def load_gene_list(path: Union[str, Path]) -> List[str]:
    """Read one gene identifier per line; blank lines and '#' comments are skipped."""
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Gene list not found: {path}")

    genes = []
    with open(file_path, "r") as f:
        for line in f:
            line = line.strip()
            if not line or line.startswith("#"):
                continue
            genes.append(line.split("\t")[0].split(",")[0].strip())
    return genes


# ---------------------------------------------------------------------------
# Replicate collapsing
# ---------------------------------------------------------------------------


def collapse_replicates(
    expression: pd.DataFrame,
    sample_to_tissue: Union[Mapping[str, str], pd.Series],
    how: str = "mean",
) -> pd.DataFrame:
    """
    Aggregate sample-level columns into one column per tissue.

    GTEx and similar resources publish per-sample expression; tau is
    computed on one value per tissue.

    Args:
        expression: Gene x sample matrix.
        sample_to_tissue: Sample name -> tissue name.
        how: "mean" or "median" across the samples of a tissue (NaN skipped).

    Returns:
        Gene x tissue matrix, tissues in order of first appearance.
    """
    if how not in ("mean", "median"):
        raise ValueError(f"Unknown aggregation: {how} (use 'mean' or 'median')")

    mapping = pd.Series(sample_to_tissue, dtype=object)
    unmapped = [s for s in expression.columns if s not in mapping.index]
    if unmapped:
        logger.warning(
            f"[Expression] Dropping {len(unmapped)} sample(s) with no tissue "
            f"annotation: {unmapped[:5]}{'...' if len(unmapped) > 5 else ''}"
        )
    samples = [s for s in expression.columns if s in mapping.index]
    if not samples:
        raise ValueError("No expression columns match the sample-to-tissue mapping")

    tissues = mapping.loc[samples]
    grouped = expression[samples].T.groupby(tissues.to_numpy(), sort=False)
    collapsed = grouped.agg(how).T
    collapsed.index = expression.index

    logger.info(
        f"[Expression] Collapsed {len(samples)} samples into "
        f"{collapsed.shape[1]} tissues ({how})"
    )
    return collapsed
