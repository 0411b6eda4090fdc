"""
Error taxonomy for preference synchronization
"""
from enum import Enum
from typing import Optional


class FailureReason(str, Enum):
    """Why an update or load did not reach a synced state"""
    AUTHORITY_UNREACHABLE = "authority_unreachable"
    AUTHORITY_REJECTED = "authority_rejected"
    MALFORMED_RESPONSE = "malformed_response"
    INVALID_INTENT = "invalid_intent"
    NO_USER = "no_user"


class AuthorityError(Exception):
    """Base class for remote authority failures"""
    reason = FailureReason.AUTHORITY_UNREACHABLE

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class AuthorityUnreachable(AuthorityError):
    """Network error or timeout talking to the authority"""
    reason = FailureReason.AUTHORITY_UNREACHABLE


class AuthorityRejected(AuthorityError):
    """Authority answered with a non-2xx status"""
    reason = FailureReason.AUTHORITY_REJECTED

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class MalformedResponse(AuthorityError):
    """Authority body was not a JSON object"""
    reason = FailureReason.MALFORMED_RESPONSE


class PersistentStoreError(Exception):
    """Durable slot could not be read or written"""


class InvalidIntentError(ValueError):
    """Unknown preference field or a value of the wrong kind"""

    def __init__(self, message: str, field: str):
        super().__init__(message)
        self.message = message
        self.field = field
