"""
Tests for the pipeline module.
"""

import json
from pathlib import Path

import pandas as pd
import pytest
import yaml

from tissue_specificity.expression import MalformedExpressionError
from tissue_specificity.pipeline import PipelineConfig, TissueSpecificityPipeline
from tissue_specificity.scoring import RESULT_COLUMNS


@pytest.fixture
def pipeline_config(pipeline_config_path):
    return PipelineConfig.from_yaml(str(pipeline_config_path))


class TestPipelineInit:
    """Tests for TissueSpecificityPipeline initialization."""

    def test_init_with_config(self, pipeline_config):
        pipeline = TissueSpecificityPipeline(pipeline_config)

        assert pipeline.config == pipeline_config
        assert pipeline.expression is None
        assert pipeline.gene_metadata is None
        assert pipeline.result is None
        assert pipeline.output_files == {}

    def test_init_output_dir(self, pipeline_config):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        assert pipeline.output_dir == Path(pipeline_config.output_dir)


class TestPipelineSetup:
    """Tests for pipeline setup."""

    def test_setup_creates_output_dirs(self, pipeline_config):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.setup()

        assert pipeline.output_dir.exists()
        assert (pipeline.output_dir / "figures").exists()


class TestPipelineDataLoading:
    """Tests for input loading."""

    def test_load_expression_and_metadata(self, pipeline_config, tissue_matrix):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.load_data()

        assert pipeline.expression.shape == tissue_matrix.shape
        assert len(pipeline.gene_metadata) == len(tissue_matrix)
        assert pipeline.data_quality_report.n_genes == len(tissue_matrix)
        assert pipeline.gene_subset is None

    def test_load_expression_file_not_found(self, tmp_path):
        config = PipelineConfig(
            expression_path=str(tmp_path / "missing.tsv"),
            output_dir=str(tmp_path / "out"),
        )
        pipeline = TissueSpecificityPipeline(config)

        with pytest.raises(FileNotFoundError, match="Expression file not found"):
            pipeline.load_data()

    def test_gene_subset_file_merged_with_config(self, pipeline_config, tissue_matrix, tmp_path):
        genes = list(tissue_matrix.index)
        subset_path = tmp_path / "subset.txt"
        subset_path.write_text(f"# panel\n{genes[0]}\n{genes[1]}\n")

        pipeline_config.gene_subset_path = str(subset_path)
        pipeline_config.gene_subset = [genes[1], genes[2]]
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.load_data()

        assert pipeline.gene_subset == [genes[1], genes[2], genes[0]]

    def test_malformed_expression_raises(self, tmp_path):
        path = tmp_path / "bad.tsv"
        path.write_text("gene\tA\tB\ng1\t1\t-2\n")
        config = PipelineConfig(expression_path=str(path), output_dir=str(tmp_path / "out"))

        with pytest.raises(MalformedExpressionError):
            TissueSpecificityPipeline(config).load_data()


class TestPipelineFullRun:
    """Tests for the complete pipeline run."""

    def test_full_pipeline_run(self, pipeline_config, tissue_matrix):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        result = pipeline.run()

        output_dir = Path(pipeline_config.output_dir)
        assert (output_dir / "tissue_specificity.csv").exists()
        assert (output_dir / "bins.csv").exists()
        assert (output_dir / "report.json").exists()
        assert (output_dir / "report.md").exists()
        assert (output_dir / "run_metadata.yaml").exists()

        table = pd.read_csv(output_dir / "tissue_specificity.csv")
        assert list(table.columns[: len(RESULT_COLUMNS)]) == RESULT_COLUMNS
        assert len(table) == len(result.table)
        assert table["tau"].is_monotonic_decreasing
        assert table["symbol"].str.startswith("SYM").all()

        bins = pd.read_csv(output_dir / "bins.csv", index_col="gene_id")
        assert bins.shape == tissue_matrix.shape
        assert bins.to_numpy().min() >= 0
        assert bins.to_numpy().max() <= 10

    def test_reports_content(self, pipeline_config):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.run()
        output_dir = Path(pipeline_config.output_dir)

        with open(output_dir / "report.json") as f:
            report = json.load(f)
        assert report["pipeline_name"] == "test_run"
        assert report["data_quality"]["n_genes"] == 50
        assert report["scoring"]["options"]["num_bins"] == 10
        assert report["scoring"]["join"]["n_unmatched"] == 0

        markdown = (output_dir / "report.md").read_text()
        assert "# Tissue Specificity - Analysis Report" in markdown
        assert "## Filtering" in markdown

        with open(output_dir / "run_metadata.yaml") as f:
            metadata = yaml.safe_load(f)
        assert metadata["input_files"]["expression_hash"] != "N/A"
        assert metadata["input_files"]["gene_subset_hash"] == "N/A"
        assert metadata["options"]["unmatched_policy"] == "drop"

    def test_output_files_recorded(self, pipeline_config):
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.run()

        for key in ["results", "bins", "report_json", "report_md", "run_metadata"]:
            assert Path(pipeline.output_files[key]).exists()

    def test_bins_skipped_by_default(self, pipeline_config):
        pipeline_config.write_bins = False
        pipeline = TissueSpecificityPipeline(pipeline_config)
        pipeline.run()

        assert "bins" not in pipeline.output_files
        assert not (Path(pipeline_config.output_dir) / "bins.csv").exists()

    def test_pipeline_reproducibility(self, pipeline_config, tmp_path):
        first = TissueSpecificityPipeline(pipeline_config).run()

        pipeline_config.output_dir = str(tmp_path / "second")
        second = TissueSpecificityPipeline(pipeline_config).run()

        pd.testing.assert_frame_equal(first.table, second.table)

    def test_run_with_simulated_atlas(self, small_atlas, tmp_path):
        expr_path = tmp_path / "atlas.tsv"
        meta_path = tmp_path / "atlas_meta.tsv"
        small_atlas.expression.to_csv(expr_path, sep="\t")
        small_atlas.gene_metadata.to_csv(meta_path, sep="\t")

        config = PipelineConfig(
            name="atlas",
            output_dir=str(tmp_path / "atlas_out"),
            verbose=False,
            expression_path=str(expr_path),
            metadata_path=str(meta_path),
        )
        result = TissueSpecificityPipeline(config).run()

        table = result.table.set_index("gene_id")
        specific = small_atlas.genes_of_class("specific")
        assert (table.loc[specific, "tau"] == 1.0).all()
        assert (
            table.loc[specific, "max_tissue"] == small_atlas.specific_tissue[specific]
        ).all()
        for gene in small_atlas.genes_of_class("silent"):
            assert gene not in table.index
        assert "gene_class" in table.columns
