"""Tests for mpmdemog.summary — per-model and batch trait summaries."""

import logging

import pytest

from mpmdemog.config import default_config
from mpmdemog.errors import NonErgodicError
from mpmdemog.lifehistory import life_expect_mean
from mpmdemog.linalg import growth_rate
from mpmdemog.summary import life_history_summary, summarize_mpms
from mpmdemog.types import MPM


@pytest.fixture
def leslie3():
    return MPM(
        matU=[[0.0, 0.0, 0.0], [0.6, 0.0, 0.0], [0.0, 0.4, 0.0]],
        matF=[[0.0, 1.5, 2.0], [0.0, 0.0, 0.0], [0.0, 0.0, 0.0]],
    )


@pytest.fixture
def imprimitive():
    """Period-2 cycle: two eigenvalues of modulus 1."""
    return MPM(
        matU=[[0.0, 0.0], [0.5, 0.0]],
        matF=[[0.0, 2.0], [0.0, 0.0]],
    )


class TestLifeHistorySummary:
    def test_core_traits(self, mpm1):
        out = life_history_summary(mpm1)
        assert out['lambda'] == pytest.approx(growth_rate(mpm1.matA))
        assert out['life_expect_mean'] == pytest.approx(life_expect_mean(mpm1.matU))
        for key in ('net_repro_rate', 'gen_time', 'entropy_k', 'qsd_age',
                    'mature_prob', 'mature_age', 'vr_survival', 'vr_fecundity',
                    'trans_fecundity', 'pert_survival'):
            assert key in out
        assert 'vr_dorm_enter' not in out

    def test_start_override(self, mpm1):
        out = life_history_summary(mpm1, start=1)
        assert out['life_expect_mean'] == pytest.approx(2.509115602152, abs=1e-9)

    def test_elasticity_totals(self, mpm1):
        config = default_config()
        config.perturbation.type = "elasticity"
        out = life_history_summary(mpm1, config)
        total = sum(v for k, v in out.items() if k.startswith('trans_'))
        assert total == pytest.approx(1.0)

    def test_age_classified_model_omits_qsd_age(self, leslie3):
        out = life_history_summary(leslie3)
        assert 'qsd_age' not in out
        assert out['lambda'] == pytest.approx(growth_rate(leslie3.matA))
        assert out['longevity'] == 3
        assert out['mature_age'] == pytest.approx(1.0)

    def test_dormancy_rates(self, mpm1):
        config = default_config()
        config.traits.dorm_stages = [4]
        out = life_history_summary(mpm1, config)
        assert out['vr_dorm_exit'] == pytest.approx(0.22 / 0.39)
        assert 0 < out['vr_dorm_enter'] < 1


class TestSummarizeMpms:
    def test_one_row_per_model(self, mpm1, primitive3):
        df = summarize_mpms([mpm1, primitive3], names=["mpm1", "primitive3"])
        assert list(df.index) == ["mpm1", "primitive3"]
        assert df.index.name == 'model'
        assert df['error'].isna().all()
        assert df.loc["primitive3", 'lambda'] == \
            pytest.approx(growth_rate(primitive3.matA))

    def test_leslie_models_keep_their_rows(self, mpm1, leslie2, leslie3):
        df = summarize_mpms([mpm1, leslie2, leslie3])
        assert df['error'].isna().all()
        assert df.loc[0, 'qsd_age'] >= 1
        assert df['qsd_age'].iloc[1:].isna().all()
        assert df['lambda'].notna().all()

    def test_failure_propagates(self, mpm1, imprimitive):
        with pytest.raises(NonErgodicError):
            summarize_mpms([mpm1, imprimitive])

    def test_skip_failures(self, mpm1, imprimitive, caplog):
        config = default_config()
        config.traits.skip_failures = True
        with caplog.at_level(logging.WARNING, logger="mpmdemog.summary"):
            df = summarize_mpms([mpm1, imprimitive], config)
        assert df.loc[0, 'error'] is None
        assert df.loc[1, 'error'].startswith("NonErgodicError")
        assert "model 1 skipped" in caplog.text

    def test_names_length(self, mpm1):
        with pytest.raises(ValueError):
            summarize_mpms([mpm1], names=["a", "b"])
