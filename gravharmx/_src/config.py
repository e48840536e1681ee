"""
JAX precision configuration.

The recursions in this package need 64-bit floats: unnormalized Legendre
functions reach 1e49 at degree 100 and the inclination-function reference
values are checked to 1e-10.  Like the scripts and test-suite, applications
are expected to call ``jax.config.update("jax_enable_x64", True)`` (or
:func:`enable_x64`) before building any engine.
"""

import jax
import jax.numpy as jnp
from loguru import logger


def enable_x64() -> None:
    """Switch JAX to 64-bit mode for the rest of the process."""
    jax.config.update("jax_enable_x64", True)


def x64_enabled() -> bool:
    """Whether JAX is currently running in 64-bit mode."""
    return jax.dtypes.canonicalize_dtype(jnp.float64) == jnp.float64


def warn_if_single_precision(name: str) -> None:
    """Log a warning when ``name`` is being built in 32-bit mode."""
    if not x64_enabled():
        logger.warning(
            f"{name} constructed with jax_enable_x64=False; values are stored "
            "in float32 and large-degree results will overflow or lose accuracy"
        )
