"""Error taxonomy for the assistant core.

Exceptions defined here are raised and caught *inside* the core. Tool
handlers translate them into tagged results (see ``tools.contract``) so
nothing crosses the tool boundary as an exception.

Hierarchy:
- AssistantError
  - DatastoreError          (persistence failure)
  - UpstreamError           (email delivery, speech provider)
    - EmailDeliveryError
    - SpeechProviderError
  - MicrophoneError         (audio device acquisition)
"""

from enum import Enum
from typing import Optional


class ErrorKind(str, Enum):
    """Kinds of non-success outcomes reported to the orchestrating caller."""
    NOT_FOUND = "not_found"
    BLOCKED = "blocked"
    NO_CHANGES = "no_changes"
    VALIDATION_FAILURE = "validation_failure"
    PERSISTENCE_FAILURE = "persistence_failure"
    UPSTREAM_FAILURE = "upstream_failure"
    INTERNAL = "internal"


class AssistantError(Exception):
    """Base exception for assistant core errors."""

    kind: ErrorKind = ErrorKind.INTERNAL

    def __init__(self, message: str):
        self.message = message
        super().__init__(message)


class DatastoreError(AssistantError):
    """The datastore rejected an insert, update, or query."""

    kind = ErrorKind.PERSISTENCE_FAILURE

    def __init__(self, message: str, table: Optional[str] = None):
        self.table = table
        super().__init__(message)


class UpstreamError(AssistantError):
    """A downstream HTTP collaborator failed."""

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        response_body: Optional[str] = None,
    ):
        self.status_code = status_code
        self.response_body = response_body
        super().__init__(message)


class EmailDeliveryError(UpstreamError):
    """Invoice email could not be delivered."""
    pass


class SpeechProviderError(UpstreamError):
    """Speech provider refused a request (token grant, agent handshake)."""
    pass


class MicrophoneErrorKind(str, Enum):
    PERMISSION_DENIED = "permission_denied"
    NOT_FOUND = "not_found"
    UNAVAILABLE = "unavailable"


_MICROPHONE_MESSAGES = {
    MicrophoneErrorKind.PERMISSION_DENIED: (
        "Microphone access denied. Please allow microphone access and try again."
    ),
    MicrophoneErrorKind.NOT_FOUND: (
        "No microphone found. Please connect a microphone and try again."
    ),
    MicrophoneErrorKind.UNAVAILABLE: (
        "Could not access the microphone. Please check your audio settings and try again."
    ),
}


class MicrophoneError(AssistantError):
    """Microphone could not be acquired.

    ``user_message`` is safe to show to the end user; ``message`` keeps the
    underlying device error for logs.
    """

    kind = ErrorKind.UPSTREAM_FAILURE

    def __init__(self, error_kind: MicrophoneErrorKind, detail: str = ""):
        self.error_kind = error_kind
        self.user_message = _MICROPHONE_MESSAGES[error_kind]
        super().__init__(detail or self.user_message)
