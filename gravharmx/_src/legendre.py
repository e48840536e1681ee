"""
Associated Legendre Functions
=============================

Fully-normalized Associated Legendre Functions (ALFs) P_bar_lm(theta) and their
first and second co-latitude derivatives, evaluated at a single co-latitude with
the standard forward column method, Fixed-Order-Increase-Degree (FOID), of
Holmes & Featherstone (2002, sec. 2.1).

Key Concepts:
-------------
    • t = cos(theta), u = sin(theta), theta in [0, pi] measured from the pole.
    • Seeds: P_bar_00 = 1, P_bar_11 = sqrt(3) * u.
    • Sectorial terms: P_bar_mm = u * sqrt((2m+1)/(2m)) * P_bar_m-1,m-1.
    • Column terms (fixed m, increasing l):
          P_bar_lm = a_lm * t * P_bar_l-1,m - b_lm * P_bar_l-2,m
      with
          a_lm = sqrt((2l-1)(2l+1) / ((l-m)(l+m)))
          b_lm = sqrt((2l+1)(l+m-1)(l-m-1) / ((l-m)(l+m)(2l-3)))
      and b_lm = 0 directly below the diagonal (l - m = 1).
    • Derivatives divide by u, so they are undefined at the poles.

The recursion is run as a ``jax.lax.scan`` over degree that advances every order
of one degree at once.  Each entry sees exactly the arithmetic of the
column-by-column formulation, and the whole evaluation can be ``jax.vmap``-ed
over co-latitudes.

References:
-----------
[1] Holmes, S. A. & Featherstone, W. E. (2002). A unified approach to the
    Clenshaw summation and the recursive computation of very high degree and
    order normalised associated Legendre functions. J. Geodesy 76, 279-299.
"""

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Float
from loguru import logger
import numpy as np

from .errors import DerivativeNotComputedError, SingularGeometryError
from .indexing import TriangularIndex
from .normalization import NormalizationTable

# |sin(theta)| below this is treated as a pole
POLE_ATOL = 1e-12


def at_pole(theta) -> np.ndarray:
    """Whether sin(theta) vanishes (theta at 0 or pi)."""
    return np.abs(np.sin(theta)) < POLE_ATOL


def _foid_coefficients(l_max: int):
    """
    Recursion constants a_lm, b_lm, f_lm and the sectorial factors.

    Returns:
    --------
    a, b, f : ndarray [l_max+1, l_max+1]
        Dense matrices, zero for m >= l (f also zero for m >= l).
    sectorial : ndarray [l_max+1]
        sqrt((2l+1)/(2l)) for l >= 2, sqrt(3) at l = 1 (the P_bar_11 seed).
    """
    n = l_max + 1
    l, m = np.meshgrid(np.arange(n), np.arange(n), indexing="ij")
    below = m < l
    a = np.zeros((n, n))
    b = np.zeros((n, n))
    f = np.zeros((n, n))

    lb, mb = l[below], m[below]
    a[below] = np.sqrt((2 * lb - 1.0) * (2 * lb + 1) / ((lb - mb) * (lb + mb)))
    f[below] = np.sqrt((lb * lb - mb * mb) * (2 * lb + 1) / (2 * lb - 1.0))

    two_below = m < l - 1
    lb, mb = l[two_below], m[two_below]
    b[two_below] = np.sqrt(
        ((2 * lb + 1.0) * (lb + mb - 1) * (lb - mb - 1))
        / ((lb - mb) * (lb + mb) * (2 * lb - 3))
    )

    degrees = np.arange(n)
    sectorial = np.zeros(n)
    sectorial[2:] = np.sqrt((2 * degrees[2:] + 1.0) / (2 * degrees[2:]))
    if l_max > 0:
        sectorial[1] = np.sqrt(3)
    return a, b, f, sectorial


class FOIDRecursion(eqx.Module):
    """
    Precomputed FOID constants for one maximum degree.

    Calling the module with a co-latitude runs the recursion and returns the
    ALFs (and requested derivatives) in triangular order.  The scan writes
    each degree row straight into flat triangular buffers, so no dense
    (l_max+1, l_max+1) matrix is ever formed.  The call is a pure JAX
    function of theta, so an ensemble of co-latitudes is evaluated with

        jax.vmap(lambda th: recursion(th, order))(thetas)

    Attributes:
    -----------
    l_max : int
        Maximum degree.
    """

    l_max: int
    _a: Float[Array, "L L"]
    _b: Float[Array, "L L"]
    _f: Float[Array, "L L"]
    _sectorial: Float[Array, "L"]

    def __init__(self, l_max: int):
        self.l_max = TriangularIndex(l_max).l_max
        a, b, f, sectorial = _foid_coefficients(self.l_max)
        self._a = jnp.asarray(a)
        self._b = jnp.asarray(b)
        self._f = jnp.asarray(f)
        self._sectorial = jnp.asarray(sectorial)

    def derivative_row(self, l, t, u, P, P_prev) -> Float[Array, "L"]:
        """
        First co-latitude derivative of degree l from rows l and l-1.

            dP_bar_mm = m * t / u * P_bar_mm
            dP_bar_lm = 1/u * (l * t * P_bar_lm - f_lm * P_bar_l-1,m)
        """
        m = jnp.arange(self.l_max + 1)
        sectorial = m * t / u * P
        column = 1.0 / u * (l * t * P - self._f[l] * P_prev)
        return jnp.where(m == l, sectorial, jnp.where(m < l, column, 0.0))

    def second_derivative_row(self, l, t, u, P, dP, dP_prev) -> Float[Array, "L"]:
        """
        Second co-latitude derivative of degree l.

            ddP_bar_mm = (m-1) * t / u * dP_bar_mm - m * P_bar_mm
            ddP_bar_lm = 1/u * ((l-1) * t * dP_bar_lm - f_lm * dP_bar_l-1,m) - l * P_bar_lm
        """
        m = jnp.arange(self.l_max + 1)
        sectorial = (m - 1) * t / u * dP - m * P
        column = 1.0 / u * ((l - 1) * t * dP - self._f[l] * dP_prev) - l * P
        return jnp.where(m == l, sectorial, jnp.where(m < l, column, 0.0))

    def _rows(self, l, t, u, P, P_prev, dP_prev, order):
        rows = [P]
        if order >= 1:
            rows.append(self.derivative_row(l, t, u, P, P_prev))
        if order == 2:
            rows.append(self.second_derivative_row(l, t, u, P, rows[1], dP_prev))
        return rows

    def __call__(self, theta: float, order: int = 0) -> tuple[Array, ...]:
        """
        ALFs and derivatives up to ``order`` in triangular order.

        Parameters:
        -----------
        theta : float
            Co-latitude [rad].
        order : int
            Highest derivative to compute (0, 1 or 2).

        Returns:
        --------
        tuple of Float[Array, "size"]
            (P,), (P, dP) or (P, dP, ddP).
        """
        if order not in (0, 1, 2):
            raise ValueError(f"order must be 0, 1 or 2, got {order}")
        n = self.l_max + 1
        size = n * (n + 1) // 2
        t = jnp.cos(theta)
        u = jnp.sin(theta)
        orders = jnp.arange(n)
        first = jnp.zeros(n, dtype=self._a.dtype).at[0].set(1.0)
        zero = jnp.zeros_like(first)

        # a full row written at offset l(l+1)/2 leaves zeros past m = l,
        # which the row of degree l+1 overwrites
        rows = self._rows(0, t, u, first, zero, zero, order)
        buffers = tuple(jnp.zeros(size, dtype=first.dtype).at[:n].set(r) for r in rows)
        if n == 1:
            return buffers

        def step(carry, x):
            prev, prev2, dprev, buffers = carry
            a_l, b_l, s_l, l = x
            column = a_l * t * prev - b_l * prev2
            sectorial = s_l * u * jnp.roll(prev, 1)
            P = jnp.where(orders < l, column, jnp.where(orders == l, sectorial, 0.0))
            rows = self._rows(l, t, u, P, prev, dprev, order)
            offset = l * (l + 1) // 2
            buffers = tuple(
                jax.lax.dynamic_update_slice(buffer, row, (offset,))
                for buffer, row in zip(buffers, rows)
            )
            dP = rows[1] if order >= 1 else dprev
            return (P, prev, dP, buffers), None

        xs = (self._a[1:], self._b[1:], self._sectorial[1:], jnp.arange(1, n))
        dprev = rows[1] if order >= 1 else zero
        (_, _, _, buffers), _ = jax.lax.scan(step, (first, zero, dprev, buffers), xs)
        return buffers


class AssociatedLegendre(eqx.Module):
    """
    Fully-normalized ALFs and co-latitude derivatives at one co-latitude.

    Everything is computed at construction; the instance is immutable.  The
    derivative tables exist only when requested, otherwise they are ``None``
    and reading them raises DerivativeNotComputedError.  Requesting second
    derivatives also computes first derivatives, which they are built from.

    Mathematical Formulation:
    -------------------------
    Unnormalized values are recovered with the normalization constants:

        P_lm = P_bar_lm / N_lm

    and the same scaling applies to each derivative.

    Attributes:
    -----------
    l_max : int
        Maximum degree.
    theta : float
        Co-latitude [rad].
    normalization : NormalizationTable
        N_lm up to l_max, used for the unnormalized getters.
    index : TriangularIndex
        Layout of all stored tables.
    values : Float[Array, "size"]
        P_bar_lm in triangular order.
    first_derivatives : Float[Array, "size"] or None
        dP_bar_lm / d_theta.
    second_derivatives : Float[Array, "size"] or None
        d2P_bar_lm / d_theta2.
    """

    l_max: int
    theta: float
    normalization: NormalizationTable
    index: TriangularIndex
    values: Float[Array, "size"]
    first_derivatives: Float[Array, "size"] | None
    second_derivatives: Float[Array, "size"] | None

    def __init__(
        self,
        l_max: int,
        theta: float,
        derivatives: bool = False,
        second_derivatives: bool = False,
    ):
        self.index = TriangularIndex(l_max)
        self.l_max = self.index.l_max
        self.theta = float(theta)
        # also reports 32-bit mode
        self.normalization = NormalizationTable(self.l_max)

        order = 2 if second_derivatives else 1 if derivatives else 0
        if order and at_pole(self.theta):
            raise SingularGeometryError(
                f"co-latitude derivatives divide by sin(theta), which vanishes "
                f"at theta={self.theta}"
            )

        tables = FOIDRecursion(self.l_max)(self.theta, order)
        self.values = tables[0]
        self.first_derivatives = tables[1] if order >= 1 else None
        self.second_derivatives = tables[2] if order == 2 else None
        logger.debug(
            f"AssociatedLegendre: l_max={self.l_max}, theta={self.theta:.6f}, "
            f"derivative order={order}"
        )

    def _read(self, table, l: int, m: int, name: str) -> float:
        if table is None:
            raise DerivativeNotComputedError(
                f"{name} were not requested when this AssociatedLegendre was built"
            )
        return float(table[self.index(l, m)])

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def normalized(self, l: int, m: int) -> float:
        """Fully-normalized ALF P_bar_lm(theta)."""
        return float(self.values[self.index(l, m)])

    def unnormalized(self, l: int, m: int) -> float:
        """Unnormalized ALF P_lm(theta) = P_bar_lm / N_lm."""
        return self.normalized(l, m) / self.normalization.get(l, m)

    def first_derivative(self, l: int, m: int) -> float:
        """dP_bar_lm / d_theta."""
        return self._read(self.first_derivatives, l, m, "first derivatives")

    def first_derivative_unnormalized(self, l: int, m: int) -> float:
        """dP_lm / d_theta."""
        return self.first_derivative(l, m) / self.normalization.get(l, m)

    def second_derivative(self, l: int, m: int) -> float:
        """d2P_bar_lm / d_theta2."""
        return self._read(self.second_derivatives, l, m, "second derivatives")

    def second_derivative_unnormalized(self, l: int, m: int) -> float:
        """d2P_lm / d_theta2."""
        return self.second_derivative(l, m) / self.normalization.get(l, m)

    def as_matrix(self, derivative: int = 0) -> Float[Array, "L L"]:
        """
        Dense (l_max+1, l_max+1) view of a stored table, zero for m > l.

        Parameters:
        -----------
        derivative : int
            0 for the ALFs, 1 or 2 for the co-latitude derivatives.
        """
        tables = (self.values, self.first_derivatives, self.second_derivatives)
        if derivative not in (0, 1, 2):
            raise ValueError(f"derivative must be 0, 1 or 2, got {derivative}")
        table = tables[derivative]
        if table is None:
            raise DerivativeNotComputedError(
                f"derivative order {derivative} was not requested at construction"
            )
        l, m = self.index.degrees_orders()
        dense = jnp.zeros((self.l_max + 1, self.l_max + 1), dtype=table.dtype)
        return dense.at[l, m].set(table)
