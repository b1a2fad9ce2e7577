"""OceanLedger Core - configuration, logging and the error taxonomy."""

from .config import CoreSettings, clear_config_cache, get_config
from .exceptions import (
    AllocationError,
    AlreadyFulfilledError,
    AlreadyRevealedError,
    ConfigException,
    ConflictError,
    InsufficientDataError,
    InvalidInputError,
    InvalidProofError,
    NotFoundError,
    OceanLedgerException,
    RequestClosedError,
    RequestPendingError,
    UnknownRequestError,
    ValidationException,
)
from .logging import (
    configure_logging,
    correlation_context,
    get_logger,
)

__all__ = [
    # Config
    "CoreSettings",
    "get_config",
    "clear_config_cache",
    # Exceptions
    "OceanLedgerException",
    "ValidationException",
    "InvalidInputError",
    "ConfigException",
    "NotFoundError",
    "ConflictError",
    "AlreadyRevealedError",
    "AlreadyFulfilledError",
    "RequestPendingError",
    "RequestClosedError",
    "UnknownRequestError",
    "InvalidProofError",
    "InsufficientDataError",
    "AllocationError",
    # Logging
    "configure_logging",
    "correlation_context",
    "get_logger",
]
