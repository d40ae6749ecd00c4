"""Sequential batch queue for icon generation.

This module provides :class:`BatchQueueController`, which turns a batch of
uploaded images into an ordered stream of per-item outcomes.

Key Responsibilities
--------------------
- **Ordering**: items are processed strictly in submission order, each one
  reaching a terminal state before the next is started. Files submitted
  while the queue is draining are appended and processed afterwards.
- **Single flight**: a process-wide dispatch lock is held while an item is
  in progress, so at most one transformation is in flight across every
  controller in the process.
- **Isolation**: a failing item never affects its siblings. Empty files are
  failed locally without reaching the negotiator.
- **Observability**: every transition (``pending``, ``in-progress``,
  ``complete``/``failed``) is pushed to subscribed observers and yielded by
  :meth:`BatchQueueController.drain` as it happens.

Usage
-----
::

    controller = BatchQueueController(negotiator, build_instruction_text())
    controller.subscribe(lambda event: print(event.item_id, event.status))
    controller.submit(files)

    for event in controller.drain():
        render(event)

    results = [snap.to_result() for snap in controller.current_state()]
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterable, Iterator
from typing import Protocol

from .errors import IconforgeError, QueueBusyError
from .models import QueueEvent, SourceImage, WorkItem, WorkItemSnapshot, WorkStatus

logger = logging.getLogger(__name__)

EMPTY_FILE_MESSAGE = "Invalid or empty file"
DEFAULT_FAILURE_MESSAGE = "Failed to process image"
INTERRUPTED_MESSAGE = "Processing was interrupted"

Observer = Callable[[QueueEvent], None]

# Held while any work item is in progress, in any controller.
_DISPATCH_LOCK = threading.Lock()


class Transformer(Protocol):
    """Anything that can turn a source image into a base64 icon."""

    def transform(self, source: SourceImage, instruction_text: str) -> str: ...


class BatchQueueController:
    """Owns an ordered queue of work items and drives them one at a time.

    The controller is the only writer of work item state. Callers and
    observers only ever see :class:`~iconforge.core.models.WorkItemSnapshot`
    and :class:`~iconforge.core.models.QueueEvent` values.

    Attributes:
        instruction_text: Prompt sent with every item in this queue
    """

    def __init__(self, negotiator: Transformer, instruction_text: str) -> None:
        self._negotiator = negotiator
        self.instruction_text = instruction_text

        self._items: list[WorkItem] = []
        self._observers: list[Observer] = []
        self._lock = threading.Lock()
        self._draining = False

    # -- Observation --------------------------------------------------------

    def subscribe(self, observer: Observer) -> Callable[[], None]:
        """Register *observer* for every transition.

        Returns:
            A callable that removes the observer again
        """
        with self._lock:
            self._observers.append(observer)

        def unsubscribe() -> None:
            with self._lock:
                if observer in self._observers:
                    self._observers.remove(observer)

        return unsubscribe

    def current_state(self) -> list[WorkItemSnapshot]:
        """Return snapshots of every item, in submission order."""
        with self._lock:
            return [item.snapshot() for item in self._items]

    @property
    def pending_count(self) -> int:
        with self._lock:
            return sum(1 for item in self._items if item.status is WorkStatus.PENDING)

    @property
    def is_idle(self) -> bool:
        """True when no drain is running."""
        return not self._draining

    # -- Mutation -----------------------------------------------------------

    def submit(self, files: Iterable[SourceImage]) -> list[WorkItemSnapshot]:
        """Append one pending work item per file, keeping the given order.

        Args:
            files: Uploaded images

        Returns:
            Snapshots of the newly queued items
        """
        items = [WorkItem(source=source) for source in files]
        with self._lock:
            self._items.extend(items)
            queued = len(self._items)

        for item in items:
            self._emit(self._event_for(item))

        logger.info("Queued %d item(s); %d in queue.", len(items), queued)
        return [item.snapshot() for item in items]

    def clear(self) -> None:
        """Discard every item.

        Raises:
            QueueBusyError: If the queue is being drained
        """
        with self._lock:
            if self._draining:
                raise QueueBusyError("Cannot clear the queue while it is being processed")
            self._items.clear()
        logger.info("Queue cleared.")

    # -- Processing ---------------------------------------------------------

    def drain(self) -> Iterator[QueueEvent]:
        """Process pending items in order, yielding each transition as it happens.

        Yields:
            The ``in-progress`` event of an item, then its terminal event

        Raises:
            QueueBusyError: If another drain of this queue is already running
        """
        with self._lock:
            if self._draining:
                raise QueueBusyError("Queue is already being processed")
            self._draining = True

        try:
            while True:
                item = self._next_pending()
                if item is None:
                    break
                yield from self._process(item)
        finally:
            with self._lock:
                self._draining = False

    def run(self) -> list[WorkItemSnapshot]:
        """Drain the queue to completion and return the final state."""
        for _ in self.drain():
            pass
        return self.current_state()

    # -- Internals ----------------------------------------------------------

    def _next_pending(self) -> WorkItem | None:
        with self._lock:
            return next((item for item in self._items if item.status is WorkStatus.PENDING), None)

    def _process(self, item: WorkItem) -> Iterator[QueueEvent]:
        with _DISPATCH_LOCK:
            try:
                yield self._transition(item, item.start)
                terminal = self._resolve(item)
            finally:
                # Only reached with the item still running when the consumer
                # abandons the drain mid-item.
                if item.status is WorkStatus.IN_PROGRESS:
                    self._transition(item, item.fail, INTERRUPTED_MESSAGE)
        yield terminal

    def _resolve(self, item: WorkItem) -> QueueEvent:
        """Run one in-progress item to a terminal state."""
        name = item.source.filename or "unknown"

        if item.source.is_empty:
            logger.warning("Skipping '%s': empty file.", name)
            return self._transition(item, item.fail, EMPTY_FILE_MESSAGE)

        try:
            b64 = self._negotiator.transform(item.source, self.instruction_text)
        except IconforgeError as exc:
            logger.warning("Icon generation failed for '%s': %s", name, exc.message)
            return self._transition(item, item.fail, exc.message or DEFAULT_FAILURE_MESSAGE)
        except Exception as exc:
            logger.exception("Unexpected error processing '%s'.", name)
            return self._transition(item, item.fail, str(exc) or DEFAULT_FAILURE_MESSAGE)

        if not b64:
            return self._transition(item, item.fail, "No image returned by API")

        logger.info("Icon ready for '%s' -> %s.", name, item.output_name)
        return self._transition(item, item.complete, b64)

    def _transition(self, item: WorkItem, action: Callable[..., None], *args) -> QueueEvent:
        with self._lock:
            action(*args)
            event = self._event_for(item)
        self._emit(event)
        return event

    @staticmethod
    def _event_for(item: WorkItem) -> QueueEvent:
        return QueueEvent(
            item_id=item.id,
            status=item.status,
            output_name=item.output_name,
            result=item.result,
        )

    def _emit(self, event: QueueEvent) -> None:
        with self._lock:
            observers = list(self._observers)
        for observer in observers:
            try:
                observer(event)
            except Exception:
                logger.exception("Queue observer failed on %s event.", event.status.value)
