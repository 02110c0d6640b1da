"""Tests for mpmdemog.linalg — fundamental matrix and dominant eigen-system."""

import numpy as np
import pytest

from mpmdemog.errors import NonErgodicError, SingularMatrixError
from mpmdemog.linalg import (
    EIG_RTOL,
    dominant_eigen,
    fundamental_matrix,
    growth_rate,
    repro_value,
    stable_dist,
)


# ── fundamental_matrix ────────────────────────────────────────────────

class TestFundamentalMatrix:
    def test_single_stage(self):
        N = fundamental_matrix([[0.75]])
        assert N[0, 0] == pytest.approx(4.0)

    def test_stasis_and_growth(self):
        U = np.array([[0.5, 0.0], [0.25, 0.5]])
        np.testing.assert_allclose(fundamental_matrix(U), [[2.0, 0.0], [1.0, 2.0]])

    def test_nonnegative_entries(self, mpm1, primitive3):
        for U in (mpm1.matU, primitive3.matU):
            assert np.all(fundamental_matrix(U) >= -1e-12)

    def test_random_substochastic_nonnegative(self):
        rng = np.random.default_rng(7)
        for _ in range(20):
            U = rng.random((4, 4))
            U = U / U.sum(axis=0) * rng.uniform(0.1, 0.99, size=4)
            assert np.all(fundamental_matrix(U) >= -1e-12)

    def test_immortal_stage_is_singular(self):
        U = np.array([[1.0, 0.0], [0.0, 0.5]])
        with pytest.raises(SingularMatrixError):
            fundamental_matrix(U)

    def test_closed_class_is_singular(self):
        U = np.array([[0.0, 1.0], [1.0, 0.0]])
        with pytest.raises(SingularMatrixError):
            fundamental_matrix(U)


# ── dominant_eigen ────────────────────────────────────────────────────

class TestDominantEigen:
    def test_leslie2(self, leslie2, leslie2_lambda):
        eig = dominant_eigen(leslie2.matA)
        assert eig.lam == pytest.approx(leslie2_lambda)
        # Right eigenvector proportional to [lambda, 0.5]
        expected_w = np.array([leslie2_lambda, 0.5])
        np.testing.assert_allclose(eig.w, expected_w / expected_w.sum())

    def test_normalisation(self, primitive3):
        eig = dominant_eigen(primitive3.matA)
        assert eig.w.sum() == pytest.approx(1.0)
        assert float(eig.v @ eig.w) == pytest.approx(1.0)
        assert np.all(eig.w >= 0)
        assert np.all(eig.v >= 0)

    def test_eigen_equations(self, mpm1):
        A = mpm1.matA
        eig = dominant_eigen(A)
        np.testing.assert_allclose(A @ eig.w, eig.lam * eig.w, atol=1e-10)
        np.testing.assert_allclose(eig.v @ A, eig.lam * eig.v, atol=1e-10)

    def test_imprimitive_raises(self):
        A = np.array([[0.0, 2.0], [0.5, 0.0]])
        with pytest.raises(NonErgodicError):
            dominant_eigen(A)

    def test_repeated_dominant_root_raises(self):
        with pytest.raises(NonErgodicError):
            dominant_eigen(np.diag([0.5, 0.5]))

    def test_close_moduli_distinguished(self):
        assert EIG_RTOL == 1e-8
        eig = dominant_eigen(np.diag([1.0, 1.0 + 1e-7]))
        assert eig.lam == pytest.approx(1.0 + 1e-7, rel=1e-12)
        np.testing.assert_allclose(eig.w, [0.0, 1.0])

    def test_moduli_within_tolerance_raise(self):
        with pytest.raises(NonErgodicError):
            dominant_eigen(np.diag([1.0, 1.0 + 1e-9]))

    def test_nilpotent_raises(self):
        with pytest.raises(NonErgodicError):
            dominant_eigen(np.array([[0.0, 0.0], [0.5, 0.0]]))


class TestAccessors:
    def test_growth_rate(self, leslie2, leslie2_lambda):
        assert growth_rate(leslie2.matA) == pytest.approx(leslie2_lambda)

    def test_stable_dist_sums_to_one(self, mpm1):
        assert stable_dist(mpm1.matA).sum() == pytest.approx(1.0)

    def test_repro_value_scaled_to_start(self, mpm1):
        v = repro_value(mpm1.matA, start=1)
        assert v[1] == pytest.approx(1.0)

    def test_repro_value_by_name(self, mpm1):
        v = repro_value(mpm1.matA, start="small", stages=mpm1.stages)
        np.testing.assert_allclose(v, repro_value(mpm1.matA, start=1))
