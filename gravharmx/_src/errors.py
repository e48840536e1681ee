"""
Exceptions raised by gravharmx.

All three failure kinds are caller errors: the computations are deterministic
and pure, so nothing here is retried or recovered internally.
"""


class GravHarmError(Exception):
    """Base class for all gravharmx errors."""


class DegreeOrderError(GravHarmError, IndexError):
    """An index (l, m, p or k) lies outside the stored triangular/ragged layout."""


class SingularGeometryError(GravHarmError, ValueError):
    """The requested quantity divides by sin(theta) or sin(I), which is zero."""


class DerivativeNotComputedError(GravHarmError, RuntimeError):
    """A derivative table was read that was not requested at construction."""
