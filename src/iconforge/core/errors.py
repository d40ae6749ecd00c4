"""Error taxonomy for the icon batch pipeline.

Errors fall into two groups:

- **Batch-level**: :class:`ConfigurationError` stops the whole batch before
  any request is made.
- **Item-level**: :class:`ValidationError`, :class:`UpstreamError` and
  :class:`EmptyResponseError` fail a single work item; sibling items keep
  processing.

:class:`CompatibilityError` never leaves the negotiator. It marks a request
shape the server rejected and triggers the fallback call.
"""


class IconforgeError(Exception):
    """Base class for every error raised by Iconforge.

    The message is intended to be displayed directly to the user.
    """

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ConfigurationError(IconforgeError):
    """Required configuration (the API credential) is missing."""


class ValidationError(IconforgeError):
    """An input file is empty or otherwise unusable."""


class CompatibilityError(IconforgeError):
    """The server rejected an optional request parameter."""


class UpstreamError(IconforgeError):
    """The image service failed for a reason other than parameter support.

    Attributes:
        status_code: HTTP status reported by the service, when known
    """

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EmptyResponseError(IconforgeError):
    """The service answered without an inline image or a link to one."""


class InvalidTransitionError(IconforgeError):
    """A work item was asked to move against its state machine."""


class QueueBusyError(IconforgeError):
    """The queue is being drained and cannot accept this operation."""
