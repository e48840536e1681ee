"""
Tests for NormalizationTable.
"""

import copy
import math

import jax.numpy as jnp
import numpy as np
import pytest

from gravharmx._src.errors import DegreeOrderError
from gravharmx._src.normalization import NormalizationTable


def closed_form(l: int, m: int) -> float:
    """sqrt((2 - delta_0m)(2l+1)(l-m)!/(l+m)!) evaluated with factorials."""
    d0m = 1 if m == 0 else 0
    return math.sqrt(
        (2 - d0m) * (2 * l + 1) * math.factorial(l - m) / math.factorial(l + m)
    )


def test_normalization_closed_form():
    """The recursion matches the factorial closed form for low degrees."""
    nlm = NormalizationTable(10)
    for l in range(5):
        for m in range(l + 1):
            assert nlm.get(l, m) == pytest.approx(closed_form(l, m), abs=1e-15)


def test_normalization_closed_form_relative():
    """Agreement holds in relative terms across the whole table."""
    l_max = 20
    nlm = NormalizationTable(l_max)
    for l in range(l_max + 1):
        for m in range(l + 1):
            assert nlm.get(l, m) == pytest.approx(closed_form(l, m), rel=1e-13)


def test_normalization_zonal_terms():
    """N_l0 = sqrt(2l+1) exactly."""
    nlm = NormalizationTable(50)
    for l in range(51):
        assert nlm.get(l, 0) == math.sqrt(2 * l + 1)


def test_normalization_high_degree_finite():
    """No overflow at high degree; the far sectorial corner may underflow to 0."""
    nlm = NormalizationTable(2000)
    values = np.asarray(nlm.values)
    assert values.shape == (2001 * 2002 // 2,)
    assert np.all(np.isfinite(values))
    assert np.all(values >= 0.0)
    assert nlm.get(2000, 0) == pytest.approx(math.sqrt(4001))
    assert nlm.get(2000, 50) > 0.0


def test_normalization_as_matrix():
    nlm = NormalizationTable(6)
    N = nlm.as_matrix()
    assert N.shape == (7, 7)
    assert float(N[4, 2]) == nlm.get(4, 2)
    assert jnp.all(jnp.triu(N, k=1) == 0.0)


def test_normalization_copy_is_independent():
    """A copy carries the same degree and values."""
    nlm = NormalizationTable(8)
    other = copy.deepcopy(nlm)
    assert other.l_max == nlm.l_max
    assert jnp.array_equal(other.values, nlm.values)


def test_normalization_out_of_range():
    nlm = NormalizationTable(4)
    with pytest.raises(DegreeOrderError):
        nlm.get(5, 0)
    with pytest.raises(DegreeOrderError):
        nlm.get(2, 3)
