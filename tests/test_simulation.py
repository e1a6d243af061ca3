"""
Tests for the synthetic tissue atlas generator.
"""

import numpy as np
import pandas as pd
import pytest

from tissue_specificity.scoring import ScoringOptions, score_tissue_specificity
from tissue_specificity.simulation import (
    GENE_CLASSES,
    TissueAtlasSimulationConfig,
    generate_synthetic_tissue_atlas,
)


class TestSimulationConfig:
    """Tests for TissueAtlasSimulationConfig."""

    def test_defaults(self):
        config = TissueAtlasSimulationConfig()
        assert config.n_tissues == 12
        assert config.seed == 42
        assert config.leak_level <= 2.0 ** -5

    def test_invalid_tissues(self):
        with pytest.raises(ValueError, match="n_tissues"):
            TissueAtlasSimulationConfig(n_tissues=0)

    def test_invalid_missing_rate(self):
        with pytest.raises(ValueError, match="missing_rate"):
            TissueAtlasSimulationConfig(missing_rate=1.0)


class TestGenerateAtlas:
    """Tests for generate_synthetic_tissue_atlas."""

    def test_shapes(self, small_atlas):
        assert small_atlas.expression.shape == (16 + 20 + 5 + 100, 8)
        assert small_atlas.tissues == list(small_atlas.expression.columns)
        assert small_atlas.expression.index.name == "gene_id"
        assert small_atlas.expression.index.is_unique

    def test_gene_classes(self, small_atlas):
        counts = small_atlas.gene_class.value_counts()
        assert counts["specific"] == 16
        assert counts["ubiquitous"] == 20
        assert counts["silent"] == 5
        assert counts["background"] == 100
        assert set(counts.index) <= set(GENE_CLASSES)

    def test_values_valid(self, small_atlas):
        values = small_atlas.expression.to_numpy()
        assert np.isfinite(values).all()
        assert (values >= 0).all()

    def test_specific_genes_planted(self, small_atlas):
        expr = small_atlas.expression
        for gene in small_atlas.genes_of_class("specific"):
            tissue = small_atlas.specific_tissue[gene]
            assert expr.loc[gene].idxmax() == tissue
            others = expr.loc[gene].drop(tissue)
            assert (others <= small_atlas.config.leak_level).all()

    def test_specific_tissues_cycle(self, small_atlas):
        specific = small_atlas.genes_of_class("specific")
        tissues = small_atlas.specific_tissue[specific].tolist()
        assert tissues[:8] == small_atlas.tissues
        assert small_atlas.specific_tissue[small_atlas.genes_of_class("silent")].isna().all()

    def test_ubiquitous_genes_flat(self, small_atlas):
        expr = small_atlas.expression.loc[small_atlas.genes_of_class("ubiquitous")]
        assert (expr.nunique(axis=1) == 1).all()

    def test_metadata(self, small_atlas):
        meta = small_atlas.gene_metadata
        assert list(meta.index) == list(small_atlas.expression.index)
        assert meta["symbol"].is_unique
        assert (meta["gene_class"] == small_atlas.gene_class.to_numpy()).all()

    def test_reproducible(self):
        config = TissueAtlasSimulationConfig(n_tissues=4, n_background=20, seed=3)
        a = generate_synthetic_tissue_atlas(config)
        b = generate_synthetic_tissue_atlas(config)
        pd.testing.assert_frame_equal(a.expression, b.expression)

    def test_different_seeds_differ(self):
        a = generate_synthetic_tissue_atlas(TissueAtlasSimulationConfig(n_tissues=4, seed=1))
        b = generate_synthetic_tissue_atlas(TissueAtlasSimulationConfig(n_tissues=4, seed=2))
        assert not np.allclose(a.expression.to_numpy(), b.expression.to_numpy())

    def test_missing_rate(self):
        atlas = generate_synthetic_tissue_atlas(
            TissueAtlasSimulationConfig(n_background=200, missing_rate=0.2, seed=5)
        )
        background = atlas.expression.loc[atlas.genes_of_class("background")]
        fraction = background.isna().to_numpy().mean()
        assert 0.1 < fraction < 0.3
        other = atlas.expression.drop(index=background.index)
        assert not other.isna().any().any()

    def test_to_dict(self, small_atlas):
        d = small_atlas.to_dict()
        assert d["n_genes"] == 141
        assert d["n_tissues"] == 8
        assert d["gene_classes"]["specific"] == 16
        assert d["seed"] == 7


class TestScoringRecoversGroundTruth:
    """Scoring a simulated atlas separates the planted gene classes."""

    @pytest.fixture
    def scored(self, small_atlas):
        result = score_tissue_specificity(
            small_atlas.expression,
            small_atlas.gene_metadata,
            ScoringOptions(retain_degenerate=True),
        )
        return result.table.set_index("gene_id")

    def test_specific_genes_score_one(self, small_atlas, scored):
        specific = small_atlas.genes_of_class("specific")
        assert (scored.loc[specific, "tau"] == 1.0).all()

    def test_silent_genes_not_expressed(self, small_atlas, scored):
        silent = small_atlas.genes_of_class("silent")
        assert (scored.loc[silent, "tau_status"] == "not_expressed").all()

    def test_ubiquitous_genes_score_low(self, small_atlas, scored):
        ubiquitous = scored.loc[small_atlas.genes_of_class("ubiquitous"), "tau"]
        specific = scored.loc[small_atlas.genes_of_class("specific"), "tau"]
        assert ubiquitous.median() < 0.3
        assert ubiquitous.max() < specific.min()

    def test_specific_genes_ranked_first(self, small_atlas, scored):
        top = list(scored.index[:16])
        assert set(top) == set(small_atlas.genes_of_class("specific"))
