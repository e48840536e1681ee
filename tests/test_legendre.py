"""
Tests for AssociatedLegendre and the FOID recursion.
"""

import copy

import jax
import jax.numpy as jnp
import numpy as np
from loguru import logger
import pytest

from gravharmx._src import config
from gravharmx._src.errors import (
    DegreeOrderError,
    DerivativeNotComputedError,
    SingularGeometryError,
)
from gravharmx._src.legendre import AssociatedLegendre, FOIDRecursion

THETA = np.deg2rad(65.0)
DTHETA = np.deg2rad(5e-5)

# ---------------------------------------------------------------------------
# Values
# ---------------------------------------------------------------------------


def test_legendre_reference_values():
    """Unnormalized values at theta = 65 deg against independent reference values."""
    plm = AssociatedLegendre(100, THETA)
    assert plm.unnormalized(14, 4) == pytest.approx(-9.251507461437021e03, abs=1e-10)
    assert plm.unnormalized(97, 26) == pytest.approx(1.765752185461010e49, abs=1e36)


def test_legendre_matches_scipy_lpmv():
    """
    Unnormalized values agree with scipy's lpmv up to the Condon-Shortley phase.

    scipy includes (-1)^m in P_l^m; the geodesy convention does not.
    """
    from scipy.special import lpmv

    theta = 1.1
    l_max = 20
    plm = AssociatedLegendre(l_max, theta)
    for l in range(l_max + 1):
        for m in range(l + 1):
            expected = (-1) ** m * lpmv(m, l, np.cos(theta))
            assert plm.unnormalized(l, m) == pytest.approx(expected, rel=1e-10, abs=1e-12)


def test_legendre_seeds():
    """P_bar_00 = 1, P_bar_11 = sqrt(3) sin(theta), P_bar_10 = sqrt(3) cos(theta)."""
    theta = 0.4
    plm = AssociatedLegendre(3, theta)
    assert plm.normalized(0, 0) == 1.0
    assert plm.normalized(1, 1) == pytest.approx(np.sqrt(3) * np.sin(theta), rel=1e-15)
    assert plm.normalized(1, 0) == pytest.approx(np.sqrt(3) * np.cos(theta), rel=1e-15)


def test_legendre_l_max_zero():
    plm = AssociatedLegendre(0, 0.3, derivatives=True, second_derivatives=True)
    assert plm.normalized(0, 0) == 1.0
    assert plm.first_derivative(0, 0) == 0.0
    assert plm.second_derivative(0, 0) == 0.0


def test_legendre_at_pole_without_derivatives():
    """At the north pole only the zonal terms survive: P_bar_l0 = sqrt(2l+1)."""
    plm = AssociatedLegendre(10, 0.0)
    for l in range(11):
        assert plm.normalized(l, 0) == pytest.approx(np.sqrt(2 * l + 1), rel=1e-14)
        for m in range(1, l + 1):
            assert plm.normalized(l, m) == 0.0


def test_legendre_theta_is_stored():
    plm = AssociatedLegendre(5, THETA)
    assert plm.theta == THETA


# ---------------------------------------------------------------------------
# Derivatives
# ---------------------------------------------------------------------------


def test_legendre_first_derivative_finite_difference():
    """Centered difference of P_bar_13,5 matches the first derivative."""
    pa = AssociatedLegendre(100, THETA + DTHETA)
    pb = AssociatedLegendre(100, THETA - DTHETA)
    plm = AssociatedLegendre(100, THETA, derivatives=True)
    l, m = 13, 5
    numeric = (pa.normalized(l, m) - pb.normalized(l, m)) / (2 * DTHETA)
    assert (plm.first_derivative(l, m) - numeric) / numeric == pytest.approx(0.0, abs=1e-7)


def test_legendre_second_derivative_finite_difference():
    """Centered difference of dP_bar_13,5 matches the second derivative."""
    pa = AssociatedLegendre(100, THETA + DTHETA, derivatives=True)
    pb = AssociatedLegendre(100, THETA - DTHETA, derivatives=True)
    plm = AssociatedLegendre(100, THETA, derivatives=True, second_derivatives=True)
    l, m = 13, 5
    numeric = (pa.first_derivative(l, m) - pb.first_derivative(l, m)) / (2 * DTHETA)
    assert (plm.second_derivative(l, m) - numeric) / numeric == pytest.approx(0.0, abs=1e-7)


def test_legendre_satisfies_differential_equation():
    """
    P'' + cot(theta) P' + (l(l+1) - m^2/sin^2(theta)) P = 0 for every (l, m).
    """
    theta = 1.1
    l_max = 30
    plm = AssociatedLegendre(l_max, theta, second_derivatives=True)
    s, c = np.sin(theta), np.cos(theta)
    for l in range(l_max + 1):
        for m in range(l + 1):
            P = plm.normalized(l, m)
            dP = plm.first_derivative(l, m)
            ddP = plm.second_derivative(l, m)
            residual = ddP + c / s * dP + (l * (l + 1) - m**2 / s**2) * P
            assert residual == pytest.approx(0.0, abs=1e-9 * (l + 1) ** 2)


def test_legendre_second_implies_first():
    plm = AssociatedLegendre(10, THETA, second_derivatives=True)
    assert plm.first_derivatives is not None
    assert plm.second_derivatives is not None


def test_legendre_unnormalized_derivatives():
    plm = AssociatedLegendre(20, THETA, second_derivatives=True)
    N = plm.normalization.get(17, 6)
    assert plm.first_derivative_unnormalized(17, 6) == plm.first_derivative(17, 6) / N
    assert plm.second_derivative_unnormalized(17, 6) == plm.second_derivative(17, 6) / N


# ---------------------------------------------------------------------------
# Storage and errors
# ---------------------------------------------------------------------------


def test_legendre_tables_share_layout():
    plm = AssociatedLegendre(12, THETA, second_derivatives=True)
    size = plm.index.size
    assert plm.values.shape == (size,)
    assert plm.first_derivatives.shape == (size,)
    assert plm.second_derivatives.shape == (size,)


def test_legendre_as_matrix():
    plm = AssociatedLegendre(9, THETA, derivatives=True)
    P = plm.as_matrix()
    dP = plm.as_matrix(derivative=1)
    assert P.shape == dP.shape == (10, 10)
    assert float(P[7, 3]) == plm.normalized(7, 3)
    assert float(dP[7, 3]) == plm.first_derivative(7, 3)
    assert jnp.all(jnp.triu(P, k=1) == 0.0)
    with pytest.raises(DerivativeNotComputedError):
        plm.as_matrix(derivative=2)


def test_legendre_unrequested_derivatives():
    plm = AssociatedLegendre(10, THETA)
    assert plm.first_derivatives is None
    with pytest.raises(DerivativeNotComputedError):
        plm.first_derivative(3, 1)
    with pytest.raises(DerivativeNotComputedError):
        plm.second_derivative_unnormalized(3, 1)


@pytest.mark.parametrize("theta", [0.0, np.pi])
def test_legendre_derivatives_at_pole(theta):
    with pytest.raises(SingularGeometryError):
        AssociatedLegendre(10, theta, derivatives=True)


def test_legendre_out_of_range():
    plm = AssociatedLegendre(10, THETA)
    with pytest.raises(DegreeOrderError):
        plm.normalized(11, 0)
    with pytest.raises(DegreeOrderError):
        plm.unnormalized(4, 5)


def test_legendre_copy_is_independent():
    """A copy duplicates the degree and every populated table."""
    plm = AssociatedLegendre(15, THETA, second_derivatives=True)
    other = copy.deepcopy(plm)
    assert other.l_max == plm.l_max
    assert other.theta == plm.theta
    assert jnp.array_equal(other.values, plm.values)
    assert jnp.array_equal(other.first_derivatives, plm.first_derivatives)
    assert jnp.array_equal(other.second_derivatives, plm.second_derivatives)


# ---------------------------------------------------------------------------
# FOIDRecursion
# ---------------------------------------------------------------------------


def test_foid_vmap_matches_single_evaluations():
    """A vmapped ensemble reproduces the per-co-latitude engines."""
    l_max = 25
    thetas = jnp.linspace(0.2, 2.9, 7)
    recursion = FOIDRecursion(l_max)
    P, dP = jax.vmap(lambda th: recursion(th, 1))(thetas)
    assert P.shape == dP.shape == (7, (l_max + 1) * (l_max + 2) // 2)
    for i, theta in enumerate(np.asarray(thetas)):
        plm = AssociatedLegendre(l_max, theta, derivatives=True)
        assert jnp.allclose(P[i], plm.values, rtol=1e-13, atol=1e-13)
        assert jnp.allclose(dP[i], plm.first_derivatives, rtol=1e-13, atol=1e-13)


def test_foid_invalid_order():
    with pytest.raises(ValueError):
        FOIDRecursion(4)(0.5, 3)


def column_foid(l_max: int, theta: float) -> np.ndarray:
    """Column-by-column FOID with plain floats, in triangular order."""
    t, u = np.cos(theta), np.sin(theta)
    P = np.zeros((l_max + 1, l_max + 1))
    P[0, 0] = 1.0
    for m in range(l_max + 1):
        if m == 1:
            P[1, 1] = np.sqrt(3) * u
        elif m >= 2:
            P[m, m] = np.sqrt((2 * m + 1) / (2 * m)) * u * P[m - 1, m - 1]
        for l in range(m + 1, l_max + 1):
            a = np.sqrt((2 * l - 1) * (2 * l + 1) / ((l - m) * (l + m)))
            b = 0.0
            if l - m > 1:
                b = np.sqrt(
                    (2 * l + 1) * (l + m - 1) * (l - m - 1)
                    / ((l - m) * (l + m) * (2 * l - 3))
                )
            P[l, m] = a * t * P[l - 1, m] - b * P[l - 2, m]
    l, m = np.tril_indices(l_max + 1)
    return P[l, m]


@pytest.mark.parametrize("l_max", [0, 1, 2, 13])
def test_foid_triangular_rows_match_column_recursion(l_max):
    """Rows written into the flat buffer land on their own (l, m) slots."""
    (P,) = FOIDRecursion(l_max)(THETA)
    assert P.shape == ((l_max + 1) * (l_max + 2) // 2,)
    np.testing.assert_allclose(np.asarray(P), column_foid(l_max, THETA), rtol=1e-13, atol=1e-15)


def test_foid_derivative_orders_share_rows():
    """Asking for more derivatives leaves the lower-order tables unchanged."""
    recursion = FOIDRecursion(12)
    (P0,) = recursion(THETA, 0)
    P1, dP1 = recursion(THETA, 1)
    P2, dP2, ddP2 = recursion(THETA, 2)
    assert jnp.array_equal(P0, P1) and jnp.array_equal(P1, P2)
    assert jnp.array_equal(dP1, dP2)
    assert ddP2.shape == P0.shape


# ---------------------------------------------------------------------------
# Precision warning
# ---------------------------------------------------------------------------


def test_single_precision_warned_once(monkeypatch):
    """A 32-bit build logs exactly one warning per engine."""
    monkeypatch.setattr(config, "x64_enabled", lambda: False)
    records = []
    handler = logger.add(lambda message: records.append(message.record), level="WARNING")
    try:
        AssociatedLegendre(4, THETA, second_derivatives=True)
    finally:
        logger.remove(handler)
    warnings = [r for r in records if r["level"].name == "WARNING"]
    assert len(warnings) == 1
    assert "jax_enable_x64=False" in warnings[0]["message"]
