"""
Storage Layouts
===============

Index mappings shared by every table in the package.

Triangular layout (normalization constants, Legendre functions):
    idx(l, m) = l*(l+1)/2 + m,            0 <= m <= l <= l_max
    size      = (l_max+1)*(l_max+2)/2

Ragged layout (inclination functions), one (l+1) x (l+1) block per degree:
    l_idx(l)        = l*(l+1)*(2*l+1)/6
    lmp_idx(l,m,p)  = l_idx(l) + m*(l+1) + p,   0 <= p <= l
    size            = l_idx(l_max+1)

The k-index used in gravity-field spectral analysis is k = l - 2p, so
k in {-l, -l+2, ..., l} and p = (l - k)/2.
"""

import equinox as eqx
import numpy as np

from .errors import DegreeOrderError


def _check_l_max(l_max) -> int:
    if isinstance(l_max, bool) or int(l_max) != l_max or l_max < 0:
        raise ValueError(f"l_max must be a non-negative integer, got l_max={l_max}")
    return int(l_max)


class TriangularIndex(eqx.Module):
    """
    Bijection between (degree, order) pairs and a flat triangular array.

    Attributes:
    -----------
    l_max : int
        Maximum degree covered by the layout.
    """

    l_max: int

    def __init__(self, l_max: int):
        self.l_max = _check_l_max(l_max)

    @property
    def size(self) -> int:
        """Number of stored (l, m) entries."""
        return (self.l_max + 1) * (self.l_max + 2) // 2

    def check(self, l: int, m: int) -> None:
        """Raise DegreeOrderError unless 0 <= m <= l <= l_max."""
        if not (0 <= m <= l <= self.l_max):
            raise DegreeOrderError(
                f"(l={l}, m={m}) outside 0 <= m <= l <= l_max={self.l_max}"
            )

    def __call__(self, l: int, m: int) -> int:
        """Flat index of (l, m)."""
        self.check(l, m)
        return l * (l + 1) // 2 + m

    def degrees_orders(self) -> tuple[np.ndarray, np.ndarray]:
        """
        Degree and order of every stored entry, in storage order.

        Returns:
        --------
        (l, m) : tuple of int ndarray [size]
        """
        l = np.repeat(np.arange(self.l_max + 1), np.arange(1, self.l_max + 2))
        m = np.arange(self.size) - l * (l + 1) // 2
        return l, m


class RaggedIndex(eqx.Module):
    """
    Bijection between (degree, order, p) triples and a flat ragged array.

    Each degree l owns a contiguous block of (l+1)**2 entries, ordered by
    order m and then by p.

    Attributes:
    -----------
    l_max : int
        Maximum degree covered by the layout.
    """

    l_max: int

    def __init__(self, l_max: int):
        self.l_max = _check_l_max(l_max)

    @staticmethod
    def degree_offset(l: int) -> int:
        """Flat index of the first entry of degree l."""
        return l * (l + 1) * (2 * l + 1) // 6

    @property
    def size(self) -> int:
        """Number of stored (l, m, p) entries."""
        return self.degree_offset(self.l_max + 1)

    def check(self, l: int, m: int, p: int) -> None:
        """Raise DegreeOrderError unless 0 <= m <= l <= l_max and 0 <= p <= l."""
        if not (0 <= m <= l <= self.l_max) or not (0 <= p <= l):
            raise DegreeOrderError(
                f"(l={l}, m={m}, p={p}) outside 0 <= m, p <= l <= l_max={self.l_max}"
            )

    def lmp(self, l: int, m: int, p: int) -> int:
        """Flat index of (l, m, p)."""
        self.check(l, m, p)
        return self.degree_offset(l) + m * (l + 1) + p

    @staticmethod
    def k_in_range(l: int, k: int) -> bool:
        """Whether k = l - 2p for some p in [0, l]."""
        return abs(k) <= l

    def lmk(self, l: int, m: int, k: int) -> int:
        """
        Flat index of (l, m, k) with k = l - 2p.

        k must satisfy |k| <= l and have the parity of l; the out-of-range
        case is handled by the callers, which return a defined zero there.
        """
        if (l - k) % 2:
            raise DegreeOrderError(f"k={k} does not have the parity of l={l}")
        return self.lmp(l, m, (l - k) // 2)

    def block(self, l: int, m: int) -> slice:
        """Slice of the l+1 p-entries belonging to (l, m)."""
        start = self.lmp(l, m, 0)
        return slice(start, start + l + 1)

    def entries(
        self, l_start: int = 0, l_stop: int | None = None
    ) -> tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Degree, order and p of the stored entries, in storage order.

        Parameters:
        -----------
        l_start, l_stop : int
            Degree range [l_start, l_stop). Defaults to every degree.

        Returns:
        --------
        (l, m, p) : tuple of int ndarray
            Covering flat indices degree_offset(l_start) .. degree_offset(l_stop).
        """
        if l_stop is None:
            l_stop = self.l_max + 1
        degrees = np.arange(l_start, l_stop)
        l = np.repeat(degrees, (degrees + 1) ** 2)
        flat = np.arange(self.degree_offset(l_start), self.degree_offset(l_stop))
        local = flat - l * (l + 1) * (2 * l + 1) // 6
        m, p = np.divmod(local, l + 1)
        return l, m, p
