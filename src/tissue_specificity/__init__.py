"""
Tissue Specificity

Tau tissue-specificity scoring for gene x tissue expression matrices
(GTEx, TCGA, Human Protein Atlas) using per-tissue quantile binning.
"""

__version__ = "0.1.0"

from .binning import (
    DEFAULT_NUM_BINS,
    DEFAULT_THRESHOLD,
    bin_expression_matrix,
    quantile_bin,
)
from .config import ConfigValidationError, load_config, validate_config
from .expression import (
    ExpressionDataQualityReport,
    MalformedExpressionError,
    collapse_replicates,
    load_expression_matrix,
    load_gene_list,
    load_gene_metadata,
    validate_expression_matrix,
)
from .pipeline import PipelineConfig, TissueSpecificityPipeline
from .scoring import (
    FilterReport,
    JoinReport,
    MetadataJoinError,
    ScoringOptions,
    TissueSpecificityResult,
    UnmatchedPolicy,
    filter_genes,
    join_gene_metadata,
    rank_genes,
    score_tissue_specificity,
    write_results,
)
from .simulation import (
    SimulatedTissueAtlas,
    TissueAtlasSimulationConfig,
    generate_synthetic_tissue_atlas,
)
from .tau import TauScore, TauStatus, compute_tau, tau

__all__ = [
    # Binning
    "DEFAULT_NUM_BINS",
    "DEFAULT_THRESHOLD",
    "bin_expression_matrix",
    "quantile_bin",
    # Tau
    "TauScore",
    "TauStatus",
    "compute_tau",
    "tau",
    # Expression input
    "ExpressionDataQualityReport",
    "MalformedExpressionError",
    "collapse_replicates",
    "load_expression_matrix",
    "load_gene_list",
    "load_gene_metadata",
    "validate_expression_matrix",
    # Scoring
    "FilterReport",
    "JoinReport",
    "MetadataJoinError",
    "ScoringOptions",
    "TissueSpecificityResult",
    "UnmatchedPolicy",
    "filter_genes",
    "join_gene_metadata",
    "rank_genes",
    "score_tissue_specificity",
    "write_results",
    # Pipeline and configuration
    "ConfigValidationError",
    "PipelineConfig",
    "TissueSpecificityPipeline",
    "load_config",
    "validate_config",
    # Simulation
    "SimulatedTissueAtlas",
    "TissueAtlasSimulationConfig",
    "generate_synthetic_tissue_atlas",
    # Meta
    "__version__",
]
