from loguru import logger

from gravharmx._src.config import enable_x64, x64_enabled
from gravharmx._src.errors import (
    DegreeOrderError,
    DerivativeNotComputedError,
    GravHarmError,
    SingularGeometryError,
)
from gravharmx._src.inclination import InclinationFunctions
from gravharmx._src.indexing import RaggedIndex, TriangularIndex
from gravharmx._src.legendre import AssociatedLegendre
from gravharmx._src.normalization import NormalizationTable

# silent unless the application opts in with logger.enable("gravharmx")
logger.disable("gravharmx")

__all__ = [
    # Storage layouts
    "TriangularIndex",
    "RaggedIndex",
    # Special functions
    "NormalizationTable",
    "AssociatedLegendre",
    "InclinationFunctions",
    # Configuration
    "enable_x64",
    "x64_enabled",
    # Errors
    "GravHarmError",
    "DegreeOrderError",
    "SingularGeometryError",
    "DerivativeNotComputedError",
]
