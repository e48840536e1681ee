"""
Normalization Constants
=======================

Normalization constants for fully-normalized spherical harmonics in the
geodesy convention (Heiskanen & Moritz, 1967, eq. 1-91), for which

    1/(4*pi) * integral Y_lm * Y_l'm' d_sigma = delta_ll' * delta_mm'

The constants are

    N_lm = sqrt((2 - delta_0m) * (2l+1) * (l-m)! / (l+m)!)

so that P_bar_lm = N_lm * P_lm.  The factorial ratio is never evaluated
directly; it is built order by order with

    N_l0 = sqrt(2l+1)
    N_lm = N_l,m-1 * sqrt(1 / ((l-m+1) * (l+m)))       m >= 1

and the (2 - delta_0m) factor is applied at the end as sqrt(2) on every m >= 1
entry, which keeps all entries finite for degrees in the thousands.

References:
-----------
[1] Heiskanen, W. A. & Moritz, H. (1967). Physical Geodesy.
"""

import equinox as eqx
import jax.numpy as jnp
from jaxtyping import Array, Float
from loguru import logger
import numpy as np

from .config import warn_if_single_precision
from .indexing import TriangularIndex


def _normalization_matrix(l_max: int) -> np.ndarray:
    """
    Dense lower-triangular matrix of N_lm, computed in float64.

    Parameters:
    -----------
    l_max : int
        Maximum degree.

    Returns:
    --------
    N : ndarray [l_max+1, l_max+1]
        N[l, m] for m <= l, zero above the diagonal.
    """
    l = np.arange(l_max + 1)
    N = np.zeros((l_max + 1, l_max + 1), dtype=np.float64)
    N[:, 0] = np.sqrt(2 * l + 1)
    for m in range(1, l_max + 1):
        lm = l[m:]
        N[m:, m] = N[m:, m - 1] * np.sqrt(1.0 / ((lm - m + 1) * (lm + m)))
    N[:, 1:] *= np.sqrt(2)
    return N


class NormalizationTable(eqx.Module):
    """
    Normalization constants N_lm up to a maximum degree.

    The table is computed once at construction and stored in the triangular
    layout of :class:`TriangularIndex`.

    Attributes:
    -----------
    l_max : int
        Maximum degree.
    index : TriangularIndex
        Layout of ``values``.
    values : Float[Array, "size"]
        N_lm in triangular order.
    """

    l_max: int
    index: TriangularIndex
    values: Float[Array, "size"]

    def __init__(self, l_max: int):
        self.index = TriangularIndex(l_max)
        self.l_max = self.index.l_max
        warn_if_single_precision(type(self).__name__)

        l, m = self.index.degrees_orders()
        self.values = jnp.asarray(_normalization_matrix(self.l_max)[l, m])
        logger.debug(f"NormalizationTable: l_max={self.l_max}, {self.index.size} entries")

    def get(self, l: int, m: int) -> float:
        """
        Normalization constant N_lm.

        Parameters:
        -----------
        l : int
            Degree, 0 <= l <= l_max.
        m : int
            Order, 0 <= m <= l.

        Returns:
        --------
        float
        """
        return float(self.values[self.index(l, m)])

    def as_matrix(self) -> Float[Array, "L L"]:
        """Dense (l_max+1, l_max+1) matrix with N_lm at [l, m], zero for m > l."""
        l, m = self.index.degrees_orders()
        dense = jnp.zeros((self.l_max + 1, self.l_max + 1), dtype=self.values.dtype)
        return dense.at[l, m].set(self.values)
