"""Client for the aWhere agronomic weather API."""

from .clients import AgroWeatherClient, ApiError, Coordinates, CredentialExpiredError, FieldId, Session
from .core import ConfigError, DateRange, ValidationError

__version__ = "0.1.0"

__all__ = [
    "AgroWeatherClient",
    "ApiError",
    "Coordinates",
    "CredentialExpiredError",
    "FieldId",
    "Session",
    "ConfigError",
    "DateRange",
    "ValidationError",
]
