import jax
from loguru import logger

import gravharmx  # noqa: F401  # import first so its logger.disable runs before enable below


def pytest_sessionstart(session):
    """Enable JAX 64-bit mode and gravharmx logging at the start of the pytest session."""
    jax.config.update("jax_enable_x64", True)
    logger.enable("gravharmx")
