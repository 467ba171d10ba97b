"""Core DRIP types."""

from .assets import AssetKind
from .errors import (
    DripError,
    ExternalDisbursementError,
    InconsistentStateError,
    InvalidInputError,
    NotFoundError,
    StoreUnavailableError,
)

__all__ = [
    "AssetKind",
    "DripError",
    "ExternalDisbursementError",
    "InconsistentStateError",
    "InvalidInputError",
    "NotFoundError",
    "StoreUnavailableError",
]
