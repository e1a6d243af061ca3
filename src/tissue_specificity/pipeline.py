"""
Scoring Pipeline Orchestrator

Runs tissue specificity scoring end to end from a YAML configuration:
load the expression matrix and gene metadata, score, and write the result
table, figures and reports to the output directory.
"""

import hashlib
import json
import logging
import sys
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

import pandas as pd
import yaml

from . import __version__
from .binning import DEFAULT_NUM_BINS, DEFAULT_THRESHOLD
from .config import load_config, validate_config
from .expression import (
    ExpressionDataQualityReport,
    load_expression_matrix,
    load_gene_list,
    load_gene_metadata,
)
from .scoring import (
    TISSUE_SPECIFIC_TAU,
    ScoringOptions,
    TissueSpecificityResult,
    UnmatchedPolicy,
    score_tissue_specificity,
    write_results,
)
from .tau import TauStatus

logger = logging.getLogger(__name__)


@dataclass
class PipelineConfig:
    """Configuration for the scoring pipeline."""

    name: str = "tau_run"
    output_dir: str = "outputs/tau_run"
    verbose: bool = True
    write_bins: bool = False

    # Input paths
    expression_path: str = ""
    metadata_path: Optional[str] = None
    gene_subset_path: Optional[str] = None
    gene_column: Optional[str] = None
    metadata_id_column: Optional[str] = None
    symbol_column: str = "symbol"

    # Scoring
    threshold: float = DEFAULT_THRESHOLD
    num_bins: int = DEFAULT_NUM_BINS
    min_max_expression: Optional[float] = None
    gene_subset: Optional[List[str]] = None
    unmatched_policy: str = "drop"
    retain_degenerate: bool = False
    ascending: bool = False

    @classmethod
    def from_yaml(cls, yaml_path: str) -> "PipelineConfig":
        """Load and validate configuration from a YAML file."""
        config_dict = load_config(yaml_path)
        validate_config(config_dict, check_files=False)

        pipeline = config_dict.get("pipeline") or {}
        data = config_dict.get("data") or {}
        scoring = config_dict.get("scoring") or {}

        return cls(
            name=pipeline.get("name", "tau_run"),
            output_dir=pipeline.get("output_dir", "outputs/tau_run"),
            verbose=pipeline.get("verbose", True),
            write_bins=pipeline.get("write_bins", False),
            expression_path=data.get("expression_path", ""),
            metadata_path=data.get("metadata_path"),
            gene_subset_path=data.get("gene_subset_path"),
            gene_column=data.get("gene_column"),
            metadata_id_column=data.get("metadata_id_column"),
            symbol_column=data.get("symbol_column", "symbol"),
            threshold=float(scoring.get("threshold", DEFAULT_THRESHOLD)),
            num_bins=scoring.get("num_bins", DEFAULT_NUM_BINS),
            min_max_expression=scoring.get("min_max_expression"),
            gene_subset=scoring.get("gene_subset"),
            unmatched_policy=scoring.get("unmatched_policy", "drop"),
            retain_degenerate=scoring.get("retain_degenerate", False),
            ascending=scoring.get("ascending", False),
        )

    def scoring_options(self, gene_subset: Optional[List[str]] = None) -> ScoringOptions:
        """Named scoring options, with an explicit gene subset taking precedence."""
        return ScoringOptions(
            threshold=self.threshold,
            num_bins=self.num_bins,
            min_max_expression=self.min_max_expression,
            gene_subset=gene_subset if gene_subset is not None else self.gene_subset,
            unmatched_policy=UnmatchedPolicy(self.unmatched_policy),
            symbol_column=self.symbol_column,
            retain_degenerate=self.retain_degenerate,
            ascending=self.ascending,
            show_progress=self.verbose,
        )


class TissueSpecificityPipeline:
    """
    Pipeline orchestrator for tau tissue specificity scoring.

    1. Loads the expression matrix, gene metadata and gene subset
    2. Bins tissues and computes tau per gene
    3. Joins metadata, filters and ranks genes
    4. Generates outputs (tables, figures, reports)
    """

    def __init__(self, config: PipelineConfig):
        """Initialize the pipeline with configuration."""
        self.config = config
        self.output_dir = Path(config.output_dir)

        # Data holders
        self.expression: Optional[pd.DataFrame] = None
        self.gene_metadata: Optional[pd.DataFrame] = None
        self.gene_subset: Optional[List[str]] = None
        self.data_quality_report: Optional[ExpressionDataQualityReport] = None

        self.result: Optional[TissueSpecificityResult] = None
        self.output_files: Dict[str, str] = {}

        # Timing
        self.start_time: Optional[datetime] = None
        self.end_time: Optional[datetime] = None

    def setup(self) -> None:
        """Set up output directories and logging."""
        self.output_dir.mkdir(parents=True, exist_ok=True)
        (self.output_dir / "figures").mkdir(exist_ok=True)

        log_file = self.output_dir / "pipeline.log"
        logging.basicConfig(
            level=logging.INFO if self.config.verbose else logging.WARNING,
            format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
            handlers=[
                logging.FileHandler(log_file),
                logging.StreamHandler(sys.stdout),
            ],
        )

        logger.info(f"Output directory: {self.output_dir}")

    def load_data(self) -> None:
        """Load expression matrix, gene metadata and gene subset."""
        logger.info("Loading input data...")

        expr_path = Path(self.config.expression_path)
        if not expr_path.exists():
            raise FileNotFoundError(
                f"Expression file not found: {expr_path}\n\n"
                f"Expected: CSV/TSV with a gene identifier column and one column "
                f"per tissue\n\n"
                f"Config path: {self.config.expression_path}"
            )
        self.expression, self.data_quality_report = load_expression_matrix(
            str(expr_path), gene_column=self.config.gene_column
        )

        if self.config.metadata_path:
            self.gene_metadata = load_gene_metadata(
                self.config.metadata_path, id_column=self.config.metadata_id_column
            )

        if self.config.gene_subset_path:
            self.gene_subset = load_gene_list(self.config.gene_subset_path)
            if self.config.gene_subset:
                self.gene_subset = list(
                    dict.fromkeys(self.config.gene_subset + self.gene_subset)
                )
            logger.info(f"Gene subset: {len(self.gene_subset)} identifiers")

        logger.info(
            f"Loaded: {self.data_quality_report.n_genes} genes, "
            f"{self.data_quality_report.n_tissues} tissues"
            + (f", metadata for {len(self.gene_metadata)} genes" if self.gene_metadata is not None else "")
        )

    def score(self) -> None:
        """Bin, compute tau, join, filter and rank."""
        logger.info("Scoring tissue specificity...")
        self.result = score_tissue_specificity(
            self.expression,
            self.gene_metadata,
            self.config.scoring_options(self.gene_subset),
        )

    def generate_outputs(self) -> None:
        """Generate all output artifacts."""
        logger.info("Generating outputs...")

        # 1. Result table
        self._save_results()

        # 2. Bin matrix (optional)
        if self.config.write_bins:
            self._save_bins()

        # 3. Summary figure
        self._generate_summary_figure()

        # 4. Reports (JSON and Markdown)
        self._generate_reports()

        # 5. Run metadata
        self._save_metadata()

        logger.info(f"All outputs saved to: {self.output_dir}")

    def _save_results(self) -> None:
        path = write_results(self.result.table, self.output_dir / "tissue_specificity.csv")
        self.output_files["results"] = str(path)

    def _save_bins(self) -> None:
        output_path = self.output_dir / "bins.csv"
        self.result.bins.to_csv(output_path, index_label="gene_id")
        self.output_files["bins"] = str(output_path)
        logger.info(f"Saved bin matrix: {output_path}")

    def _generate_summary_figure(self) -> None:
        """Tau distribution and the tissues driving tissue-specific genes."""
        try:
            # Set non-interactive backend before importing pyplot
            import matplotlib

            matplotlib.use("Agg")
            import matplotlib.pyplot as plt
            import seaborn as sns

            plt.close("all")
            fig, axes = plt.subplots(1, 2, figsize=(12, 5))

            table = self.result.table
            scored = table[table["tau_status"] == TauStatus.SCORED.value]

            # 1. Tau distribution
            sns.histplot(scored["tau"], bins=20, binrange=(0, 1), ax=axes[0], color="steelblue")
            axes[0].axvline(TISSUE_SPECIFIC_TAU, color="firebrick", linestyle="--", linewidth=1)
            axes[0].set_xlabel("Tau")
            axes[0].set_ylabel("Number of genes")
            axes[0].set_title("Tissue Specificity Distribution")

            # 2. Tissues of maximal expression among tissue-specific genes
            specific = scored[scored["tau"] > TISSUE_SPECIFIC_TAU]
            tissue_counts = specific["max_tissue"].value_counts().head(20)
            axes[1].bar(range(len(tissue_counts)), tissue_counts.values, color="steelblue")
            axes[1].set_xticks(range(len(tissue_counts)))
            axes[1].set_xticklabels(tissue_counts.index, rotation=45, ha="right")
            axes[1].set_ylabel("Tissue-specific genes")
            axes[1].set_title(f"Top tissues (tau > {TISSUE_SPECIFIC_TAU})")

            plt.tight_layout()
            output_path = self.output_dir / "figures" / "tau_distribution.png"
            plt.savefig(output_path, dpi=150, bbox_inches="tight")
            plt.close()

            self.output_files["figure"] = str(output_path)
            logger.info(f"Saved summary figure: {output_path}")

        except ImportError as e:
            logger.warning(f"Could not generate figure (missing dependency): {e}")
        except Exception as e:
            logger.warning(f"Could not generate figure: {e}")

    def _generate_reports(self) -> None:
        """Generate JSON and Markdown reports."""
        report = {
            "pipeline_name": self.config.name,
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "input_files": {
                "expression": self.config.expression_path,
                "metadata": self.config.metadata_path,
                "gene_subset": self.config.gene_subset_path,
            },
            "data_quality": (
                self.data_quality_report.to_dict() if self.data_quality_report else {}
            ),
            "scoring": self.result.to_dict(),
            "citations": self.result.get_citations(),
        }

        json_path = self.output_dir / "report.json"
        with open(json_path, "w") as f:
            json.dump(report, f, indent=2, default=str)
        self.output_files["report_json"] = str(json_path)
        logger.info(f"Saved JSON report: {json_path}")

        md_path = self.output_dir / "report.md"
        with open(md_path, "w") as f:
            f.write(self._generate_markdown_report(report))
        self.output_files["report_md"] = str(md_path)
        logger.info(f"Saved Markdown report: {md_path}")

    def _generate_markdown_report(self, report: Dict[str, Any]) -> str:
        """Generate human-readable Markdown report."""
        lines = [
            "# Tissue Specificity - Analysis Report",
            "",
            f"**Pipeline:** {report['pipeline_name']}",
            f"**Date:** {report['timestamp']}",
            "",
            "---",
            "",
            "## Input Summary",
            "",
            "| Metric | Value |",
            "|--------|-------|",
            f"| Expression | {report['input_files']['expression']} |",
            f"| Genes | {report['data_quality'].get('n_genes', 'N/A')} |",
            f"| Tissues | {report['data_quality'].get('n_tissues', 'N/A')} |",
            f"| Missing values | {report['data_quality'].get('n_missing_values', 'N/A')} |",
            "",
            self.result.format_report(),
        ]

        join = report["scoring"].get("join") or {}
        filters = report["scoring"]["filters"]
        lines.extend(
            [
                "## Filtering",
                "",
                "| Step | Genes removed |",
                "|------|---------------|",
                f"| No metadata ({join.get('policy', 'n/a')}) | "
                f"{join.get('n_unmatched', 0) if join.get('policy') == 'drop' else 0} |",
                f"| Outside gene subset | {filters['n_outside_subset']} |",
                f"| Below min max-expression | {filters['n_below_min_expression']} |",
                f"| Undefined tau | {filters['n_degenerate_excluded']} |",
                "",
                "## References",
                "",
            ]
        )
        for citation in report["citations"]:
            lines.append(f"- {citation}")
        lines.extend(["", "---", "", f"*Generated by tissue-specificity v{__version__}*"])
        return "\n".join(lines)

    def _save_metadata(self) -> None:
        """Save run metadata for reproducibility."""

        def file_hash(path: Optional[str]) -> str:
            if not path or not Path(path).exists():
                return "N/A"
            with open(path, "rb") as f:
                return hashlib.sha256(f.read()).hexdigest()[:16]

        metadata = {
            "run_id": f"{self.config.name}_{datetime.now().strftime('%Y%m%d_%H%M%S')}",
            "timestamp": datetime.now().isoformat(),
            "version": __version__,
            "input_files": {
                "expression": self.config.expression_path,
                "expression_hash": file_hash(self.config.expression_path),
                "metadata": self.config.metadata_path,
                "metadata_hash": file_hash(self.config.metadata_path),
                "gene_subset": self.config.gene_subset_path,
                "gene_subset_hash": file_hash(self.config.gene_subset_path),
            },
            "options": self.result.options.to_dict(),
            "runtime_seconds": (
                (datetime.now() - self.start_time).total_seconds()
                if self.start_time
                else None
            ),
        }

        yaml_path = self.output_dir / "run_metadata.yaml"
        with open(yaml_path, "w") as f:
            yaml.dump(metadata, f, default_flow_style=False)
        self.output_files["run_metadata"] = str(yaml_path)
        logger.info(f"Saved metadata: {yaml_path}")

    def run(self) -> TissueSpecificityResult:
        """Execute the full pipeline."""
        self.start_time = datetime.now()

        logger.info("=" * 60)
        logger.info("Tissue Specificity - Tau Scoring Pipeline")
        logger.info("=" * 60)

        try:
            self.setup()
            self.load_data()
            self.score()
            self.generate_outputs()

            self.end_time = datetime.now()
            runtime = (self.end_time - self.start_time).total_seconds()

            logger.info("=" * 60)
            logger.info(f"Pipeline completed successfully in {runtime:.1f} seconds")
            logger.info(f"Outputs: {self.output_dir}")
            logger.info("=" * 60)

        except Exception as e:
            logger.error(f"Pipeline failed: {e}")
            raise

        return self.result
