"""
Command-line interface for tissue specificity scoring.

Usage:
    python -m tissue_specificity --config configs/example_gtex.yaml
    tissue-specificity --config configs/example_gtex.yaml --threshold 1.0
"""

import sys
from pathlib import Path

import click

from . import __version__
from .pipeline import PipelineConfig, TissueSpecificityPipeline


@click.command()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Path to YAML configuration file",
)
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default=None,
    help="Override output directory from config",
)
@click.option(
    "--threshold",
    "-t",
    type=click.FloatRange(min=0.0),
    default=None,
    help="Override the noise threshold from config",
)
@click.option(
    "--verbose/--quiet",
    "-v/-q",
    default=True,
    help="Enable/disable verbose output",
)
@click.version_option(version=__version__, prog_name="tissue-specificity")
def main(config: str, output: str, threshold: float, verbose: bool) -> None:
    """
    Tissue Specificity - Tau Scoring Pipeline

    Bin a gene x tissue expression matrix per tissue, compute the tau
    specificity index per gene, and write a ranked result table.

    Example:
        python -m tissue_specificity --config configs/example_gtex.yaml
    """
    click.echo(f"Tissue Specificity v{__version__}")
    click.echo("=" * 50)

    config_path = Path(config)
    click.echo(f"Loading config: {config_path}")

    try:
        pipeline_config = PipelineConfig.from_yaml(str(config_path))

        if output:
            pipeline_config.output_dir = output
        if threshold is not None:
            pipeline_config.threshold = threshold
        pipeline_config.verbose = verbose

        pipeline = TissueSpecificityPipeline(pipeline_config)
        result = pipeline.run()

        summary = result.specificity_summary()
        click.echo("")
        click.echo("Pipeline completed successfully!")
        click.echo(
            f"Genes reported: {summary['n_genes']} "
            f"({summary['tissue_specific']} tissue-specific, "
            f"{summary['housekeeping']} housekeeping)"
        )
        click.echo(f"Results: {pipeline_config.output_dir}")

    except FileNotFoundError as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    except Exception as e:
        click.echo(f"Pipeline failed: {e}", err=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
