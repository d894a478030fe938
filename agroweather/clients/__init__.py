"""aWhere API clients."""

from .awhere import AgroWeatherClient, Coordinates, FieldId
from .base import BatchExecutorMixin
from .retry import ApiError, CredentialExpiredError, RequestRetryDriver
from .session import AuthenticationError, Session

__all__ = [
    "AgroWeatherClient",
    "Coordinates",
    "FieldId",
    "BatchExecutorMixin",
    "ApiError",
    "CredentialExpiredError",
    "RequestRetryDriver",
    "AuthenticationError",
    "Session",
]
