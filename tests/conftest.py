"""
Pytest configuration and shared fixtures for tissue_specificity tests.
"""

import numpy as np
import pandas as pd
import pytest
import yaml

from tissue_specificity.simulation import (
    TissueAtlasSimulationConfig,
    generate_synthetic_tissue_atlas,
)


@pytest.fixture
def scenario_matrix():
    """Three genes over three tissues: ubiquitous, single-tissue, silent."""
    return pd.DataFrame(
        {
            "A": [10.0, 100.0, 0.0],
            "B": [10.0, 0.0, 0.0],
            "C": [10.0, 0.0, 0.0],
        },
        index=pd.Index(["G1", "G2", "G3"], name="gene_id"),
    )


@pytest.fixture
def scenario_metadata():
    """Gene metadata for the scenario matrix."""
    return pd.DataFrame(
        {"symbol": ["ACTB", "ALB", "OR1A1"], "biotype": ["protein_coding"] * 3},
        index=pd.Index(["G1", "G2", "G3"], name="gene_id"),
    )


@pytest.fixture
def tissue_matrix():
    """Random gene x tissue TPM matrix with a few planted patterns."""
    rng = np.random.RandomState(42)
    n_genes = 50
    tissues = ["Liver", "Brain", "Heart", "Lung", "Kidney", "Muscle"]
    genes = [f"ENSG{i:011d}" for i in range(1, n_genes + 1)]
    values = 2.0 ** rng.normal(3.0, 2.0, (n_genes, len(tissues)))
    df = pd.DataFrame(values, index=genes, columns=tissues)
    df.index.name = "gene_id"
    return df


@pytest.fixture
def small_atlas():
    """Small synthetic atlas with ground-truth gene classes."""
    config = TissueAtlasSimulationConfig(
        n_tissues=8,
        n_specific=16,
        n_ubiquitous=20,
        n_silent=5,
        n_background=100,
        seed=7,
    )
    return generate_synthetic_tissue_atlas(config)


@pytest.fixture
def expression_tsv_path(tissue_matrix, tmp_path):
    """Write the tissue matrix to TSV and return path."""
    path = tmp_path / "expression.tsv"
    tissue_matrix.to_csv(path, sep="\t")
    return path


@pytest.fixture
def metadata_tsv_path(tissue_matrix, tmp_path):
    """Write gene metadata (symbols) for the tissue matrix to TSV."""
    metadata = pd.DataFrame(
        {
            "gene_id": tissue_matrix.index,
            "symbol": [f"SYM{i}" for i in range(1, len(tissue_matrix) + 1)],
        }
    )
    path = tmp_path / "metadata.tsv"
    metadata.to_csv(path, sep="\t", index=False)
    return path


@pytest.fixture
def pipeline_config_path(expression_tsv_path, metadata_tsv_path, tmp_path):
    """Write a complete YAML pipeline config and return its path."""
    config = {
        "pipeline": {
            "name": "test_run",
            "output_dir": str(tmp_path / "outputs"),
            "verbose": False,
            "write_bins": True,
        },
        "data": {
            "expression_path": str(expression_tsv_path),
            "metadata_path": str(metadata_tsv_path),
        },
        "scoring": {
            "threshold": 0.03125,
            "num_bins": 10,
            "unmatched_policy": "drop",
        },
    }
    path = tmp_path / "config.yaml"
    with open(path, "w") as f:
        yaml.dump(config, f)
    return path
