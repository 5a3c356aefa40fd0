from enum import Enum

from pydantic import BaseModel


class ErrorKind(str, Enum):
    NETWORK_UNAVAILABLE = "network_unavailable"
    TIMEOUT = "timeout"
    AUTH_FAILURE = "auth_failure"
    MALFORMED_RESPONSE = "malformed_response"
    CACHE_CORRUPT = "cache_corrupt"
    CACHE_UNWRITABLE = "cache_unwritable"
    NO_DIRECTORY_AVAILABLE = "no_directory_available"


class ErrorResponse(BaseModel):
    detail: str
