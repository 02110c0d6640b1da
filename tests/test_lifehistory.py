"""Tests for mpmdemog.lifehistory — life-history traits."""

import numpy as np
import pytest

from mpmdemog.errors import (
    ConvergenceWarning,
    DegenerateModelError,
    InvalidIndexError,
    InvalidMatrixError,
    SingularMatrixError,
)
from mpmdemog.lifehistory import (
    entropy_d,
    entropy_k,
    gen_time,
    life_expect_mean,
    life_expect_var,
    longevity,
    mature_age,
    mature_distrib,
    mature_prob,
    net_repro_rate,
    shape_rep,
    shape_surv,
)
from mpmdemog.lifetable import mpm_to_lx, mpm_to_mx
from mpmdemog.linalg import fundamental_matrix
from mpmdemog.types import GenTimeMethod, R0Method


# ── life expectancy ───────────────────────────────────────────────────

class TestLifeExpectMean:
    def test_single_stage(self):
        # Geometric lifetime: 1 / (1 - s)
        assert life_expect_mean([[0.8]]) == pytest.approx(5.0)

    def test_stasis_and_growth(self):
        U = np.array([[0.5, 0.0], [0.25, 0.5]])
        assert life_expect_mean(U, start=0) == pytest.approx(3.0)
        assert life_expect_mean(U, start=1) == pytest.approx(2.0)

    def test_age_classes(self):
        U = np.array([[0.0, 0.0, 0.0], [0.5, 0.0, 0.0], [0.0, 0.5, 0.0]])
        assert life_expect_mean(U, start=0) == pytest.approx(1.75)
        assert life_expect_mean(U, start=1) == pytest.approx(1.5)
        assert life_expect_mean(U, start=2) == pytest.approx(1.0)

    def test_matches_fundamental_column(self, primitive3):
        N = fundamental_matrix(primitive3.matU)
        for j in range(3):
            assert life_expect_mean(primitive3.matU, start=j) == \
                pytest.approx(N[:, j].sum())

    def test_mpm1_regression(self, mpm1):
        assert life_expect_mean(mpm1.matU, start=1) == \
            pytest.approx(2.509115602152, abs=1e-9)

    def test_mpm1_by_stage_name(self, mpm1):
        assert life_expect_mean(mpm1.matU, start="small", stages=mpm1.stages) == \
            pytest.approx(2.509115602152, abs=1e-9)

    def test_equals_sum_of_lx(self, mpm1):
        lx = mpm_to_lx(mpm1.matU, start=1, lx_crit=1e-12, xmax=10000)
        assert lx.sum() == pytest.approx(life_expect_mean(mpm1.matU, start=1),
                                         rel=1e-8)

    def test_mixdist(self):
        U = np.array([[0.5, 0.0], [0.25, 0.5]])
        assert life_expect_mean(U, mixdist=[0.5, 0.5]) == pytest.approx(2.5)

    def test_bad_mixdist(self):
        with pytest.raises(InvalidMatrixError):
            life_expect_mean([[0.5, 0.0], [0.25, 0.5]], mixdist=[0.5, 0.6])

    def test_singular(self):
        with pytest.raises(SingularMatrixError):
            life_expect_mean([[1.0]])

    def test_start_out_of_range(self):
        with pytest.raises(InvalidIndexError):
            life_expect_mean([[0.5]], start=1)


class TestLifeExpectVar:
    def test_geometric(self):
        s = 0.6
        assert life_expect_var([[s]]) == pytest.approx(s / (1 - s) ** 2)

    def test_deterministic_lifetime_has_zero_variance(self):
        U = np.array([[0.0, 0.0], [1.0, 0.0]])
        assert life_expect_var(U, start=0) == pytest.approx(0.0, abs=1e-12)

    def test_mixture(self):
        U = np.array([[0.0, 0.0], [1.0, 0.0]])
        # lifetimes 2 and 1 with equal weight: variance 0.25
        assert life_expect_var(U, mixdist=[0.5, 0.5]) == pytest.approx(0.25)


class TestLongevity:
    def test_constant_survival(self):
        # 0.5^x < 0.1 first at x = 4
        assert longevity([[0.5]], lx_crit=0.1) == 4

    def test_cap_warns(self):
        with pytest.warns(ConvergenceWarning):
            assert longevity([[0.999]], x_max=50) == 50


# ── maturity ──────────────────────────────────────────────────────────

class TestMaturity:
    U = np.array([[0.5, 0.0], [0.25, 0.0]])
    F = np.array([[0.0, 2.0], [0.0, 0.0]])

    def test_mature_prob(self):
        assert mature_prob(self.U, self.F, start=0) == pytest.approx(0.5)

    def test_mature_prob_reproductive_start(self):
        assert mature_prob(self.U, self.F, start=1) == pytest.approx(1.0)

    def test_mature_age(self):
        # Conditional on maturing the wait is geometric with p = 0.5
        assert mature_age(self.U, self.F, start=0) == pytest.approx(2.0)

    def test_mature_age_reproductive_start(self):
        assert mature_age(self.U, self.F, start=1) == pytest.approx(0.0)

    def test_mature_age_leslie(self, leslie2):
        assert mature_age(leslie2.matU, leslie2.matF, start=0) == pytest.approx(0.0)

    def test_unreachable_maturity(self):
        U = np.array([[0.5, 0.0], [0.0, 0.5]])
        F = np.array([[0.0, 1.0], [0.0, 0.0]])
        assert mature_prob(U, F, start=0) == 0.0
        with pytest.raises(DegenerateModelError):
            mature_age(U, F, start=0)

    def test_no_reproduction(self):
        with pytest.raises(DegenerateModelError):
            mature_prob(self.U, np.zeros((2, 2)))

    def test_mature_distrib_sums_to_one(self, mpm1):
        d = mature_distrib(mpm1.matU, repro_stages=[2, 3], start=0)
        assert d.sum() == pytest.approx(1.0)
        assert d[0] == d[1] == d[4] == 0.0
        assert np.all(d >= 0)

    def test_mature_distrib_matches_prob(self, mpm1):
        d = mature_distrib(mpm1.matU, [False, False, True, True, False], start=1)
        assert d.sum() == pytest.approx(1.0)
        assert mature_prob(mpm1.matU, mpm1.matF, start=1) > 0


# ── reproduction & generation time ────────────────────────────────────

class TestNetReproRate:
    def test_generation(self, leslie2):
        assert net_repro_rate(leslie2.matU, leslie2.matF) == pytest.approx(1.5)

    def test_start(self, leslie2):
        r0 = net_repro_rate(leslie2.matU, leslie2.matF, start=0,
                            method=R0Method.START)
        assert r0 == pytest.approx(1.5)

    def test_method_string_value(self, leslie2):
        assert net_repro_rate(leslie2.matU, leslie2.matF, method="start") == \
            pytest.approx(1.5)

    def test_unknown_method(self, leslie2):
        with pytest.raises(ValueError):
            net_repro_rate(leslie2.matU, leslie2.matF, method="lifetime")

    def test_equals_sum_lxmx(self, leslie2):
        lx = mpm_to_lx(leslie2.matU)
        mx = mpm_to_mx(leslie2.matU, leslie2.matF)
        assert (lx * mx).sum() == pytest.approx(
            net_repro_rate(leslie2.matU, leslie2.matF, method=R0Method.START)
        )


class TestGenTime:
    def test_r0(self, leslie2, leslie2_lambda):
        t = gen_time(leslie2.matU, leslie2.matF, method=GenTimeMethod.R0)
        assert t == pytest.approx(np.log(1.5) / np.log(leslie2_lambda))

    def test_age_diff(self, leslie2, leslie2_lambda):
        lam2 = leslie2_lambda ** 2
        t = gen_time(leslie2.matU, leslie2.matF, method=GenTimeMethod.AGE_DIFF)
        assert t == pytest.approx((lam2 + 1) / lam2)

    def test_cohort(self, leslie2):
        t = gen_time(leslie2.matU, leslie2.matF, method=GenTimeMethod.COHORT)
        assert t == pytest.approx(1.0 / 1.5)

    def test_lambda_one_undefined_for_r0(self):
        # lambda^2 = 0.5 lambda + 0.5, so lambda == 1
        U = np.array([[0.0, 0.0], [0.5, 0.0]])
        F = np.array([[0.5, 1.0], [0.0, 0.0]])
        with pytest.raises(DegenerateModelError):
            gen_time(U, F, method=GenTimeMethod.R0)

    def test_positive_for_mpm1(self, mpm1):
        for method in GenTimeMethod:
            assert gen_time(mpm1.matU, mpm1.matF, method=method, start=0) > 0


# ── entropy ───────────────────────────────────────────────────────────

class TestEntropy:
    def test_keyfitz(self):
        lx = [1.0, 0.5, 0.25]
        assert entropy_k(lx) == pytest.approx(np.log(2.0) / 1.75)

    def test_keyfitz_no_mortality_until_death(self):
        assert entropy_k([1.0, 1.0, 0.0]) == pytest.approx(0.0)

    def test_keyfitz_trapeze(self):
        lx = np.array([1.0, 0.5, 0.25])
        xlogx = lx * np.log(lx)
        expected = -((xlogx[0] + xlogx[1]) / 2 + (xlogx[1] + xlogx[2]) / 2) / \
            ((1.0 + 0.5) / 2 + (0.5 + 0.25) / 2)
        assert entropy_k(lx, trapeze=True) == pytest.approx(expected)

    def test_demetrius_single_age(self):
        assert entropy_d([1.0, 0.5], [0.0, 2.0]) == pytest.approx(0.0)

    def test_demetrius_two_equal_ages(self):
        assert entropy_d([1.0, 0.5], [1.0, 2.0]) == pytest.approx(np.log(2.0))

    def test_demetrius_no_reproduction(self):
        with pytest.raises(DegenerateModelError):
            entropy_d([1.0, 0.5], [0.0, 0.0])


# ── shape ─────────────────────────────────────────────────────────────

class TestShape:
    def test_constant_mortality(self):
        assert shape_surv([[0.5]], lx_crit=0.001) == pytest.approx(0.0, abs=1e-12)

    def test_constant_mortality_vector(self):
        lx = 0.8 ** np.arange(10)
        assert shape_surv(lx) == pytest.approx(0.0, abs=1e-12)

    def test_trunc_drops_zero_survivorship(self):
        lx = [1.0, 0.5, 0.25, 0.0]
        with pytest.raises(DegenerateModelError):
            shape_surv(lx)
        assert shape_surv(lx, trunc=True, lx_crit=0.1) == pytest.approx(0.0, abs=1e-12)

    def test_increasing_mortality_positive(self):
        assert shape_surv([1.0, 0.99, 0.9, 0.1]) > 0

    def test_decreasing_mortality_negative(self):
        assert shape_surv([1.0, 0.1, 0.09, 0.085]) < 0

    def test_bounds(self, mpm1):
        s = shape_surv(mpm1.matU, start=1)
        assert -0.5 <= s <= 0.5

    def test_constant_reproduction(self):
        assert shape_rep(np.full(6, 3.0)) == pytest.approx(0.0, abs=1e-12)

    def test_increasing_reproduction_positive(self):
        assert shape_rep([0.0, 1.0, 2.0, 4.0, 8.0]) > 0

    def test_rep_from_matrix(self, mpm1):
        s = shape_rep(mpm1.matF, matU=mpm1.matU, start=1)
        assert -0.5 <= s <= 0.5

    def test_rep_matrix_requires_U(self, mpm1):
        with pytest.raises(ValueError):
            shape_rep(mpm1.matF)

    def test_too_few_ages(self):
        with pytest.raises(DegenerateModelError):
            shape_surv([1.0, 0.5, 0.25], xmin=2)
