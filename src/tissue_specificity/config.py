"""
Configuration loading and validation.

Provides utility functions for loading scoring configuration from YAML files.
"""

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

logger = logging.getLogger(__name__)

VALID_UNMATCHED_POLICIES = ["fail", "drop", "keep"]


class ConfigValidationError(ValueError):
    """Exception raised for configuration validation errors."""

    def __init__(
        self, message: str, field: Optional[str] = None, suggestions: Optional[List[str]] = None
    ):
        self.field = field
        self.suggestions = suggestions or []
        super().__init__(self._format_message(message))

    def _format_message(self, message: str) -> str:
        lines = [message]
        if self.field:
            lines.append(f"Field: {self.field}")
        if self.suggestions:
            lines.append("\nSuggested fixes:")
            for i, s in enumerate(self.suggestions, 1):
                lines.append(f"  {i}. {s}")
        return "\n".join(lines)


def load_config(config_path: str) -> Dict[str, Any]:
    """
    Load scoring configuration from YAML file.

    Args:
        config_path: Path to YAML configuration file

    Returns:
        Configuration dictionary

    Raises:
        FileNotFoundError: If config file doesn't exist
        yaml.YAMLError: If YAML is invalid
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(path) as f:
        config = yaml.safe_load(f)

    if config is None:
        raise ConfigValidationError(
            "Config file is empty or invalid",
            suggestions=["Check the file contains valid YAML", "Ensure proper indentation"],
        )
    if not isinstance(config, dict):
        raise ConfigValidationError(
            f"Config must be a mapping of sections, got {type(config).__name__}",
            suggestions=["Start the file with a 'data:' section"],
        )

    return config


def validate_config(config: Dict[str, Any], check_files: bool = True) -> bool:
    """
    Validate scoring configuration.

    Args:
        config: Configuration dictionary
        check_files: If True, verify input files exist

    Returns:
        True if valid

    Raises:
        ConfigValidationError: If configuration is invalid
    """
    if "data" not in config:
        raise ConfigValidationError(
            "Missing required config section: data",
            field="data",
            suggestions=["Add a 'data:' section with expression_path to your config file"],
        )

    _validate_data_section(config.get("data") or {}, check_files)

    pipeline = config.get("pipeline") or {}
    if pipeline:
        _validate_pipeline_section(pipeline)

    scoring = config.get("scoring") or {}
    if scoring:
        _validate_scoring_section(scoring)

    return True


def _validate_data_section(data: Dict[str, Any], check_files: bool) -> None:
    """Validate the data section of config."""
    if not data.get("expression_path"):
        raise ConfigValidationError(
            "Missing required field: data.expression_path",
            field="data.expression_path",
            suggestions=["Add 'expression_path: /path/to/tissue_tpm.tsv' under the 'data:' section"],
        )

    for field in ["expression_path", "metadata_path", "gene_subset_path"]:
        value = data.get(field)
        if not value or not check_files:
            continue
        if not Path(value).exists():
            raise ConfigValidationError(
                f"File not found: {value}",
                field=f"data.{field}",
                suggestions=[
                    "Check the file path is correct",
                    "Use absolute paths if relative paths don't work",
                    f"Verify the file exists: ls -la {value}",
                ],
            )

    for field in ["gene_column", "metadata_id_column", "symbol_column"]:
        value = data.get(field)
        if value is not None and not isinstance(value, str):
            raise ConfigValidationError(
                f"Invalid {field}: {value} (must be a column name)",
                field=f"data.{field}",
            )


def _validate_pipeline_section(pipeline: Dict[str, Any]) -> None:
    """Validate the pipeline section of config."""
    output_dir = pipeline.get("output_dir")
    if output_dir:
        parent = Path(output_dir).parent
        if not parent.exists():
            logger.warning(f"Output directory parent does not exist: {parent}")

    for flag in ["verbose", "write_bins"]:
        value = pipeline.get(flag)
        if value is not None and not isinstance(value, bool):
            raise ConfigValidationError(
                f"Invalid {flag}: {value} (must be true or false)",
                field=f"pipeline.{flag}",
            )


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _validate_scoring_section(scoring: Dict[str, Any]) -> None:
    """Validate the scoring section of config."""
    threshold = scoring.get("threshold")
    if threshold is not None:
        if not _is_number(threshold) or threshold < 0:
            raise ConfigValidationError(
                f"Invalid threshold: {threshold} (must be a non-negative number)",
                field="scoring.threshold",
                suggestions=["Use the noise floor in expression units, e.g., threshold: 0.03125"],
            )

    num_bins = scoring.get("num_bins")
    if num_bins is not None:
        if not isinstance(num_bins, int) or isinstance(num_bins, bool) or num_bins < 1:
            raise ConfigValidationError(
                f"Invalid num_bins: {num_bins} (must be a positive integer)",
                field="scoring.num_bins",
                suggestions=["Use a positive integer, e.g., num_bins: 10"],
            )

    min_max = scoring.get("min_max_expression")
    if min_max is not None:
        if not _is_number(min_max) or min_max < 0:
            raise ConfigValidationError(
                f"Invalid min_max_expression: {min_max} (must be a non-negative number)",
                field="scoring.min_max_expression",
                suggestions=["Use a reporting floor in expression units, e.g., min_max_expression: 1.0"],
            )

    policy = scoring.get("unmatched_policy")
    if policy is not None and policy not in VALID_UNMATCHED_POLICIES:
        raise ConfigValidationError(
            f"Invalid unmatched_policy: {policy}",
            field="scoring.unmatched_policy",
            suggestions=[f"Use one of: {', '.join(VALID_UNMATCHED_POLICIES)}"],
        )

    subset = scoring.get("gene_subset")
    if subset is not None:
        if not isinstance(subset, list) or not all(isinstance(g, str) for g in subset):
            raise ConfigValidationError(
                f"Invalid gene_subset: {subset} (must be a list of gene identifiers)",
                field="scoring.gene_subset",
                suggestions=["Use format: gene_subset: [ENSG00000141510, ENSG00000012048]"],
            )

    for flag in ["retain_degenerate", "ascending"]:
        value = scoring.get(flag)
        if value is not None and not isinstance(value, bool):
            raise ConfigValidationError(
                f"Invalid {flag}: {value} (must be true or false)",
                field=f"scoring.{flag}",
            )
