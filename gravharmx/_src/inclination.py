"""
Inclination Functions
=====================

Fully-normalized inclination functions F_bar_lmp(I) and their derivatives with
respect to the inclination, computed without approximation by harmonic
analysis of the Legendre functions sampled along a great circle (Wagner, 1983).

Mathematical Framework:
-----------------------
A great circle with inclination I is parameterised by the argument of latitude
u in [0, 2*pi).  A point on it has co-latitude and longitude

    theta(u)  = arccos(sin(I) * sin(u))
    lambda(u) = atan2(cos(I) * sin(u), cos(u))

The unit disturbing potential of one (l, m) term along the circle,

    T_lm(u) = P_bar_lm(theta(u)) * (cos(m*lambda(u)) + sin(m*lambda(u))),

is a trigonometric polynomial of degree l in u.  Its cosine / sine
coefficients C_i, S_i (i = 0..l) are exactly the inclination functions up to
sign and index bookkeeping, so sampling at N >= 2*l_max + 1 points and one real
FFT per (l, m) recovers them.  The inclination derivative follows from the same
analysis of dT_lm/dI, obtained with the chain rule

    dtheta/dI  = -sin(u) * cos(I) / sqrt(1 - sin^2(I) * sin^2(u))
    dlambda/dI = -sin(I) * tan(u) / (1 + cos^2(I) * tan^2(u))

Two index conventions are supported: p in [0, l] (Kaula, 1966) and
k = l - 2p in {-l, -l+2, ..., l}, more convenient for gravity-field spectral
analysis.

References:
-----------
[1] Kaula, W. M. (1966). Theory of Satellite Geodesy.
[2] Wagner, C. A. (1983). Direct determination of gravitational harmonics
    from low-low GRAVSAT data. J. Geophys. Res. 88(B12).
"""

import equinox as eqx
import jax
import jax.numpy as jnp
from jaxtyping import Array, Float
from loguru import logger
import numpy as np

from .config import warn_if_single_precision
from .errors import DerivativeNotComputedError, DegreeOrderError, SingularGeometryError
from .indexing import RaggedIndex, TriangularIndex
from .legendre import POLE_ATOL, FOIDRecursion, at_pole
from .utils import harmonic_coefficients, sample_count

# (l, m) rows x samples analysed per FFT batch, about 32 MB per float64 signal
BLOCK_ENTRIES = 2**22


class GreatCircleSamples(eqx.Module):
    """
    Uniform samples of a great circle at a fixed inclination.

    Attributes:
    -----------
    u : Float[Array, "N"]
        Argument of latitude u_i = i * 2*pi/N [rad].
    theta : Float[Array, "N"]
        Co-latitude of each sample [rad].
    lam : Float[Array, "N"]
        Longitude of each sample, measured from the ascending node [rad].
    dtheta_dI, dlam_dI : Float[Array, "N"] or None
        Inclination partials, present when derivatives are requested.
    """

    u: Float[Array, "N"]
    theta: Float[Array, "N"]
    lam: Float[Array, "N"]
    dtheta_dI: Float[Array, "N"] | None
    dlam_dI: Float[Array, "N"] | None

    def __init__(self, N: int, inclination: float, derivatives: bool = False):
        cos_I = np.cos(inclination)
        sin_I = np.sin(inclination)
        du = 2 * np.pi / N
        u = du * np.arange(N)
        sin_u = np.sin(u)
        cos_u = np.cos(u)
        theta = np.arccos(sin_I * sin_u)

        self.u = jnp.asarray(u)
        self.theta = jnp.asarray(theta)
        self.lam = jnp.asarray(np.arctan2(cos_I * sin_u, cos_u))

        if derivatives:
            if np.any(at_pole(theta)):
                raise SingularGeometryError(
                    f"the great circle at inclination I={inclination} passes through "
                    "a pole, where co-latitude derivatives are undefined"
                )
            tan_u = sin_u / cos_u
            self.dtheta_dI = jnp.asarray(
                -sin_u * cos_I / np.sqrt(1 - sin_I * sin_I * sin_u * sin_u)
            )
            self.dlam_dI = jnp.asarray(
                -sin_I * tan_u / (1 + cos_I * cos_I * tan_u * tan_u)
            )
        else:
            self.dtheta_dI = None
            self.dlam_dI = None


def parity_mapping(
    l_max: int, l_start: int = 0, l_stop: int | None = None
) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
    """
    Gather plan from harmonic coefficients to F_lmp in ragged order.

    For every (l, m) the coefficients are written into the p-slice with

        if l even:          F[l/2]     = C_0 if m even else -C_0
        if l, m same parity, for i <= l with the parity of l:
                            F[(l-i)/2] =  (C_i + S_i)/2
                            F[(l+i)/2] =  (C_i - S_i)/2
        otherwise, for i <= l with the parity of l:
                            F[(l+i)/2] = -(C_i + S_i)/2
                            F[(l-i)/2] = -(C_i - S_i)/2

    applied in that order.  The i = 0 pass (l even) writes the central entry
    twice and overwrites the first rule, so each entry with k = l - 2p reads
    bin i = |k| as

        F = sigma * (C_i + tau * S_i) / 2

    with sigma = +1 for same parity, -1 otherwise, tau = sigma * sign(k) for
    k != 0 and tau = -1 at k = 0.  Multiplying by 1/2 is exact, so the
    weighted gather reproduces the sequential assignments bit for bit.

    Parameters:
    -----------
    l_max : int
        Maximum degree.
    l_start, l_stop : int
        Degree range [l_start, l_stop) to plan for. Defaults to every degree.

    Returns:
    --------
    rows : int ndarray [size]
        Row of the coefficient arrays for each entry, counted in triangular
        (l, m) order from (l_start, 0).
    bins : int ndarray [size]
        Harmonic index i = |k|.
    c_weights, s_weights : float ndarray [size]
        Weights of C_i and S_i.
    """
    l, m, p = RaggedIndex(l_max).entries(l_start, l_stop)
    k = l - 2 * p
    sigma = np.where(l % 2 == m % 2, 1.0, -1.0)
    tau = np.where(k == 0, -1.0, sigma * np.sign(k))
    rows = l * (l + 1) // 2 + m - l_start * (l_start + 1) // 2
    return rows, np.abs(k), 0.5 * sigma, 0.5 * sigma * tau


def coefficients_to_flmp(
    C: Float[Array, "lm K"],
    S: Float[Array, "lm K"],
    mapping: tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray],
) -> Float[Array, "size"]:
    """Apply a :func:`parity_mapping` plan to per-(l, m) coefficient rows."""
    rows, bins, c_weights, s_weights = mapping
    return c_weights * C[rows, bins] + s_weights * S[rows, bins]


def degree_blocks(
    l_max: int, N: int, block_entries: int | None = BLOCK_ENTRIES
) -> list[tuple[int, int]]:
    """
    Split degrees 0..l_max into consecutive ranges [l_start, l_stop).

    Each range holds at most ``block_entries`` (l, m) rows times N samples,
    except a single degree that is larger on its own.

    Parameters:
    -----------
    l_max : int
        Maximum degree.
    N : int
        Number of great-circle samples.
    block_entries : int or None
        Budget per block; None puts every degree in one block.

    Returns:
    --------
    list of (l_start, l_stop)
    """
    if block_entries is None:
        return [(0, l_max + 1)]
    blocks = []
    start, rows = 0, 0
    for l in range(l_max + 1):
        if rows and (rows + l + 1) * N > block_entries:
            blocks.append((start, l))
            start, rows = l, 0
        rows += l + 1
    blocks.append((start, l_max + 1))
    return blocks


class InclinationFunctions(eqx.Module):
    """
    Inclination functions F_bar_lmp up to a maximum degree at one inclination.

    Construction samples the great circle at N = 2**ceil(log2(2*l_max + 1))
    points, evaluates the Legendre functions at every sample with a vmapped
    FOID recursion, and analyses the (l, m) signals with batched real FFTs over
    consecutive degree blocks of at most ``block_entries`` rows times samples
    (None analyses everything in one batch).  The per-sample Legendre tables
    are discarded once the coefficients are extracted; only the ragged F_lmp
    (and dF_lmp/dI) tables are kept.

    Attributes:
    -----------
    l_max : int
        Maximum degree.
    inclination : float
        Inclination I [rad].
    index : RaggedIndex
        Layout of the stored tables.
    values : Float[Array, "size"]
        F_bar_lmp in ragged order.
    derivatives : Float[Array, "size"] or None
        dF_bar_lmp / dI, present when requested.
    """

    l_max: int
    inclination: float
    index: RaggedIndex
    values: Float[Array, "size"]
    derivatives: Float[Array, "size"] | None

    def __init__(
        self,
        l_max: int,
        inclination: float,
        derivatives: bool = False,
        block_entries: int | None = BLOCK_ENTRIES,
    ):
        self.index = RaggedIndex(l_max)
        self.l_max = self.index.l_max
        self.inclination = float(inclination)
        warn_if_single_precision(type(self).__name__)

        N = sample_count(self.l_max)
        samples = GreatCircleSamples(N, self.inclination, derivatives)
        recursion = FOIDRecursion(self.l_max)
        order = 1 if derivatives else 0
        # (N, size) triangular tables per sample
        tables = jax.vmap(lambda th: recursion(th, order))(samples.theta)

        # trigonometric factors per order, gathered per (l, m) row
        m_lam = jnp.arange(self.l_max + 1)[:, None] * samples.lam[None, :]
        cos_m_lam = jnp.cos(m_lam)
        sin_m_lam = jnp.sin(m_lam)
        _, m = TriangularIndex(self.l_max).degrees_orders()

        blocks = degree_blocks(self.l_max, N, block_entries)
        values, dvalues = [], []
        for l_start, l_stop in blocks:
            lo = l_start * (l_start + 1) // 2
            hi = l_stop * (l_stop + 1) // 2
            m_b = m[lo:hi]
            mapping = parity_mapping(self.l_max, l_start, l_stop)

            P = tables[0][:, lo:hi].T
            trig = cos_m_lam[m_b] + sin_m_lam[m_b]
            T = P * trig
            values.append(coefficients_to_flmp(*harmonic_coefficients(T), mapping))

            if derivatives:
                dP = tables[1][:, lo:hi].T
                dT = dP * samples.dtheta_dI[None, :] * trig + P * (
                    -m_b[:, None] * sin_m_lam[m_b] + m_b[:, None] * cos_m_lam[m_b]
                ) * samples.dlam_dI[None, :]
                dvalues.append(coefficients_to_flmp(*harmonic_coefficients(dT), mapping))

        self.values = jnp.concatenate(values)
        self.derivatives = jnp.concatenate(dvalues) if derivatives else None

        logger.debug(
            f"InclinationFunctions: l_max={self.l_max}, I={self.inclination:.6f}, "
            f"{N} samples in {len(blocks)} degree blocks, derivatives={derivatives}"
        )

    @property
    def max_degree(self) -> int:
        """Maximum degree of the stored tables."""
        return self.l_max

    def _require_derivatives(self) -> Float[Array, "size"]:
        if self.derivatives is None:
            raise DerivativeNotComputedError(
                "inclination derivatives were not requested when these "
                "InclinationFunctions were built"
            )
        return self.derivatives

    def _read_k(self, table, l: int, m: int, k: int) -> float:
        self.index.check(l, m, 0)
        if not self.index.k_in_range(l, k):
            return 0.0
        return float(table[self.index.lmk(l, m, k)])

    # ------------------------------------------------------------------
    # Getters
    # ------------------------------------------------------------------

    def flmp(self, l: int, m: int, p: int) -> float:
        """F_bar_lmp(I)."""
        return float(self.values[self.index.lmp(l, m, p)])

    def flmk(self, l: int, m: int, k: int) -> float:
        """F_bar_lmk(I) with k = l - 2p; zero for |k| > l."""
        return self._read_k(self.values, l, m, k)

    def dflmp(self, l: int, m: int, p: int) -> float:
        """dF_bar_lmp / dI."""
        table = self._require_derivatives()
        return float(table[self.index.lmp(l, m, p)])

    def dflmk(self, l: int, m: int, k: int) -> float:
        """dF_bar_lmk / dI; zero for |k| > l."""
        return self._read_k(self._require_derivatives(), l, m, k)

    def flmk_star(self, l: int, m: int, k: int) -> float:
        """
        Cross-track inclination function F*_lmk(I).

            F*_lmk = 1/2 * ( ((k-1) cos(I) - m) / sin(I) * F_lm,k-1
                           + ((k+1) cos(I) - m) / sin(I) * F_lm,k+1
                           - dF_lm,k-1 + dF_lm,k+1 )

        k must have the opposite parity of l so that k - 1 and k + 1 are
        valid k-indices of degree l.

        Raises:
        -------
        DerivativeNotComputedError
            If the inclination derivatives were not computed.
        SingularGeometryError
            If sin(I) vanishes.
        """
        self._require_derivatives()
        if (l - k) % 2 == 0:
            raise DegreeOrderError(
                f"F*_lmk needs k={k} of opposite parity to l={l}"
            )
        sin_I = np.sin(self.inclination)
        if abs(sin_I) < POLE_ATOL:
            raise SingularGeometryError(
                f"F*_lmk divides by sin(I), which vanishes at I={self.inclination}"
            )
        cos_I = np.cos(self.inclination)
        return 0.5 * (
            ((k - 1) * cos_I - m) / sin_I * self.flmk(l, m, k - 1)
            + ((k + 1) * cos_I - m) / sin_I * self.flmk(l, m, k + 1)
            + -self.dflmk(l, m, k - 1)
            + self.dflmk(l, m, k + 1)
        )

    def flmp_slice(self, l: int, m: int, derivative: bool = False) -> Float[Array, "p"]:
        """
        The l+1 values F_lmp (or dF_lmp/dI), p = 0..l, for one (l, m).

        Parameters:
        -----------
        l, m : int
            Degree and order.
        derivative : bool
            Read the inclination derivatives instead. Default False.
        """
        table = self._require_derivatives() if derivative else self.values
        return table[self.index.block(l, m)]
