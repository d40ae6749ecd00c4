"""Data models for the icon batch pipeline."""

import logging
import re
import uuid
from dataclasses import dataclass, field
from enum import Enum

from .errors import InvalidTransitionError

logger = logging.getLogger(__name__)

OUTPUT_SUFFIX = "-icon.png"
UNKNOWN_OUTPUT_NAME = f"unknown{OUTPUT_SUFFIX}"
DEFAULT_UPLOAD_NAME = "reference.png"
DEFAULT_MEDIA_TYPE = "image/png"

_EXTENSION = re.compile(r"\.[^.]+$")


def derive_output_name(filename: str | None) -> str:
    """Derive the download name of an icon from its source file name.

    The final extension is stripped and ``-icon.png`` appended. When no usable
    name remains, ``unknown-icon.png`` is returned.

    Args:
        filename: Display name of the uploaded file (may be None or empty)

    Returns:
        Output file name, e.g. ``"photo.JPG"`` -> ``"photo-icon.png"``
    """
    if not filename or not filename.strip():
        return UNKNOWN_OUTPUT_NAME

    stem = _EXTENSION.sub("", filename.strip())
    if not stem.strip():
        return UNKNOWN_OUTPUT_NAME
    return f"{stem}{OUTPUT_SUFFIX}"


@dataclass(frozen=True)
class SourceImage:
    """An uploaded reference image, captured once and never mutated.

    Attributes:
        content: Raw file bytes
        filename: Display name as provided by the uploader
        media_type: Declared MIME type (may be empty)
    """

    content: bytes
    filename: str = ""
    media_type: str = ""

    @property
    def is_empty(self) -> bool:
        """True when the upload carries no bytes."""
        return len(self.content) == 0

    @property
    def size(self) -> int:
        return len(self.content)

    def upload_tuple(self) -> tuple[str, bytes, str]:
        """Return the ``(name, bytes, mime)`` file shape the OpenAI SDK accepts."""
        return (
            self.filename or DEFAULT_UPLOAD_NAME,
            self.content,
            self.media_type or DEFAULT_MEDIA_TYPE,
        )


class WorkStatus(str, Enum):
    """Lifecycle state of a work item."""

    PENDING = "pending"
    IN_PROGRESS = "in-progress"
    COMPLETE = "complete"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (WorkStatus.COMPLETE, WorkStatus.FAILED)


# Allowed transitions; anything else is a programming error.
_TRANSITIONS: dict[WorkStatus, tuple[WorkStatus, ...]] = {
    WorkStatus.PENDING: (WorkStatus.IN_PROGRESS,),
    WorkStatus.IN_PROGRESS: (WorkStatus.COMPLETE, WorkStatus.FAILED),
    WorkStatus.COMPLETE: (),
    WorkStatus.FAILED: (),
}


@dataclass(frozen=True)
class WorkItemSnapshot:
    """Read-only view of a work item handed to observers and callers."""

    id: str
    filename: str
    output_name: str
    status: WorkStatus
    result_b64: str | None = None
    error: str | None = None

    def to_result(self) -> "IconResult":
        """Convert a terminal snapshot into the result shape consumers receive.

        Raises:
            InvalidTransitionError: If the item has not reached a terminal state
        """
        if self.status == WorkStatus.COMPLETE:
            return IconResult(name=self.output_name, b64=self.result_b64)
        if self.status == WorkStatus.FAILED:
            return IconResult(name=self.output_name, error=self.error)
        raise InvalidTransitionError(f"Work item {self.id} is still {self.status.value}")


@dataclass
class WorkItem:
    """One queued image-to-icon transformation and its lifecycle state.

    Only :class:`~iconforge.core.batch_queue.BatchQueueController` mutates a
    work item. Everyone else reads it through :meth:`snapshot`.

    Attributes:
        source: The uploaded image
        id: Opaque identifier assigned at enqueue time
        output_name: Download name derived from the source file name
        status: Current lifecycle state
        result_b64: Base64 PNG payload once complete
        error: Error description once failed
    """

    source: SourceImage
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    output_name: str = field(default="", init=False)
    status: WorkStatus = field(default=WorkStatus.PENDING, init=False)
    result_b64: str | None = field(default=None, init=False)
    error: str | None = field(default=None, init=False)

    def __post_init__(self) -> None:
        self.output_name = derive_output_name(self.source.filename)

    def _advance(self, target: WorkStatus) -> None:
        if target not in _TRANSITIONS[self.status]:
            raise InvalidTransitionError(
                f"Work item {self.id} cannot move from {self.status.value} to {target.value}"
            )
        logger.debug("Work item %s: %s -> %s", self.id, self.status.value, target.value)
        self.status = target

    def start(self) -> None:
        self._advance(WorkStatus.IN_PROGRESS)

    def complete(self, b64: str) -> None:
        """Mark the item complete with its base64 PNG payload."""
        if not b64:
            raise InvalidTransitionError(f"Work item {self.id} cannot complete without a payload")
        self._advance(WorkStatus.COMPLETE)
        self.result_b64 = b64

    def fail(self, error: str) -> None:
        """Mark the item failed with a user-facing error description."""
        self._advance(WorkStatus.FAILED)
        self.error = error

    @property
    def result(self) -> str | None:
        """The payload for complete items, the error text for failed ones."""
        if self.status == WorkStatus.COMPLETE:
            return self.result_b64
        if self.status == WorkStatus.FAILED:
            return self.error
        return None

    def snapshot(self) -> WorkItemSnapshot:
        return WorkItemSnapshot(
            id=self.id,
            filename=self.source.filename,
            output_name=self.output_name,
            status=self.status,
            result_b64=self.result_b64,
            error=self.error,
        )


@dataclass(frozen=True)
class QueueEvent:
    """A single work item transition, pushed to observers.

    Attributes:
        item_id: Identifier of the work item that moved
        status: The state it moved into
        output_name: Download name of the item (``"error"`` for batch-level errors)
        result: Base64 payload (complete), error text (failed), otherwise None
    """

    item_id: str
    status: WorkStatus
    output_name: str
    result: str | None = None

    def to_result(self) -> "IconResult":
        """Convert a terminal event into the result shape consumers receive.

        Raises:
            InvalidTransitionError: If the event is not terminal
        """
        if self.status == WorkStatus.COMPLETE:
            return IconResult(name=self.output_name, b64=self.result)
        if self.status == WorkStatus.FAILED:
            return IconResult(name=self.output_name, error=self.result)
        raise InvalidTransitionError(f"Event for {self.item_id} is not terminal")

    def to_dict(self) -> dict:
        return {
            "item_id": self.item_id,
            "status": self.status.value,
            "name": self.output_name,
            "result": self.result,
        }


@dataclass(frozen=True)
class IconResult:
    """Outcome handed to the result consumer: an image or an error, never both."""

    name: str
    b64: str | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and bool(self.b64)

    def to_dict(self) -> dict:
        if self.error is not None:
            return {"name": self.name, "error": self.error}
        return {"name": self.name, "b64": self.b64}
