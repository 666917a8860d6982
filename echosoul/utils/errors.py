"""
Error taxonomy shared by the ingestion and chat paths.
"""

from enum import Enum
from typing import Optional

from botocore.exceptions import ClientError


class ErrorKind(str, Enum):
    """Fixed classification of provider failures."""
    AUTH = 'auth'
    RATE_LIMIT = 'rate_limit'
    CONFIG = 'config'
    NOT_FOUND = 'not_found'
    TRANSIENT = 'transient'


NON_RETRYABLE_KINDS = frozenset({ErrorKind.AUTH, ErrorKind.CONFIG, ErrorKind.NOT_FOUND})


class EchoSoulError(Exception):
    """Base exception for the persona engine."""
    pass


class ValidationError(EchoSoulError):
    """Rejected input; the message is shown to the caller as-is."""
    pass


class SessionNotFoundError(ValidationError):
    """Session id is unknown or the session was evicted."""

    def __init__(self, session_id: str):
        super().__init__(f'Session {session_id} not found or expired')
        self.session_id = session_id


class DependencyError(EchoSoulError):
    """Failure of the embedding provider or the vector index."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT, cause: Optional[BaseException] = None):
        super().__init__(message)
        self.kind = kind
        self.cause = cause

    @property
    def retryable(self) -> bool:
        return self.kind not in NON_RETRYABLE_KINDS


class GenerationError(EchoSoulError):
    """Failure of the completion provider during a chat turn."""

    def __init__(self, message: str, kind: ErrorKind = ErrorKind.TRANSIENT):
        super().__init__(message)
        self.kind = kind


AUTH_ERROR_CODES = frozenset({'AccessDeniedException', 'UnrecognizedClientException', 'ExpiredTokenException',
                              'InvalidSignatureException'})
RATE_LIMIT_ERROR_CODES = frozenset({'ThrottlingException', 'TooManyRequestsException', 'ServiceQuotaExceededException'})
NOT_FOUND_ERROR_CODES = frozenset({'ResourceNotFoundException', 'ModelNotReadyException'})
CONFIG_ERROR_CODES = frozenset({'ValidationException'})


def classify_client_error(error: ClientError) -> ErrorKind:
    """Map a botocore ClientError onto the error taxonomy."""
    code = error.response.get('Error', {}).get('Code', '')
    if code in AUTH_ERROR_CODES:
        return ErrorKind.AUTH
    if code in RATE_LIMIT_ERROR_CODES:
        return ErrorKind.RATE_LIMIT
    if code in NOT_FOUND_ERROR_CODES:
        return ErrorKind.NOT_FOUND
    if code in CONFIG_ERROR_CODES:
        return ErrorKind.CONFIG
    return ErrorKind.TRANSIENT
