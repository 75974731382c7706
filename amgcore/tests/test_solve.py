"""Tests for the solve drivers."""

from __future__ import annotations

import numpy as np
import pytest
from scipy.sparse import csr_array

from pyamg.gallery import poisson

from amgcore import ParameterError, apply_cycle, aspreconditioner, build_hierarchy, solve


@pytest.fixture(scope="module")
def problem():
    A = csr_array(poisson((20, 20), format="csr"))
    rng = np.random.default_rng(0)
    b = rng.random(400)
    return A, b, build_hierarchy(A)


def _relres(A, b, x):
    return np.linalg.norm(b - A @ x) / np.linalg.norm(b)


def test_stationary_solve(problem):
    A, b, ml = problem
    residuals = []
    x = solve(ml, b, tol=1e-8, residuals=residuals)
    assert _relres(A, b, x) < 1e-8
    assert residuals[0] == pytest.approx(np.linalg.norm(b))
    assert residuals[-1] < residuals[0]
    assert len(residuals) <= 101


def test_solve_respects_maxiter(problem):
    A, b, ml = problem
    residuals = []
    solve(ml, b, tol=1e-14, maxiter=2, residuals=residuals)
    assert len(residuals) == 3


def test_solve_does_not_modify_initial_guess(problem):
    A, b, ml = problem
    x0 = np.ones(400)
    x = solve(ml, b, x0=x0, tol=1e-6)
    np.testing.assert_array_equal(x0, np.ones(400))
    assert _relres(A, b, x) < 1e-6


@pytest.mark.parametrize("accel", ["cg", "fgmres"])
def test_accelerated_solve(problem, accel):
    A, b, ml = problem
    residuals = []
    x = solve(ml, b, tol=1e-8, accel=accel, residuals=residuals)
    assert _relres(A, b, x) < 1e-6
    assert len(residuals) > 1


def test_unknown_accelerator(problem):
    _, b, ml = problem
    with pytest.raises(ParameterError):
        solve(ml, b, accel="bicgstab")


def test_zero_rhs_returns_zero(problem):
    _, _, ml = problem
    x = solve(ml, np.zeros(400))
    assert not np.any(x)


def test_aspreconditioner_applies_one_cycle(problem):
    A, b, ml = problem
    M = aspreconditioner(ml)
    assert M.shape == A.shape
    x = np.zeros(400)
    apply_cycle(ml, b, x)
    np.testing.assert_allclose(M @ b, x)


def test_wrong_length_rhs(problem):
    _, _, ml = problem
    with pytest.raises(ValueError):
        solve(ml, np.ones(10))
