"""Batch entry points used by the HTTP layer.

:func:`iconify_batch` checks the batch as a whole (credential present, at
least one file) and then runs every file through a
:class:`~iconforge.core.batch_queue.BatchQueueController`. Batch-level
problems are reported as a single error result and no request is made.
:func:`iter_batch_events` is the streaming variant.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator, Sequence

from .batch_queue import BatchQueueController, Observer, Transformer
from .config import IconforgeConfig
from .config import config as default_config
from .errors import ConfigurationError
from .models import IconResult, QueueEvent, SourceImage, WorkStatus
from .negotiator import RequestNegotiator
from .style_preset import build_instruction_text

logger = logging.getLogger(__name__)

BATCH_ERROR_NAME = "error"
NO_FILES_MESSAGE = "No images provided. Please select at least one image to process."


def _batch_error(message: str) -> IconResult:
    return IconResult(name=BATCH_ERROR_NAME, error=message)


def _prepare(
    files: Sequence[SourceImage],
    config: IconforgeConfig,
    negotiator: Transformer | None,
) -> BatchQueueController:
    """Validate the batch and build its controller.

    Raises:
        ConfigurationError: If no credential is configured
        ValueError: If *files* is empty
    """
    # The credential is checked even when a negotiator is injected so the
    # batch behaves the same in tests and in production.
    config.require_credentials()
    if not files:
        raise ValueError(NO_FILES_MESSAGE)

    if negotiator is None:
        negotiator = RequestNegotiator.from_config(config)
    return BatchQueueController(negotiator, build_instruction_text(config.image_size))


def iconify_batch(
    files: Sequence[SourceImage],
    config: IconforgeConfig | None = None,
    negotiator: Transformer | None = None,
    observer: Observer | None = None,
) -> list[IconResult]:
    """Generate one icon per uploaded file.

    Args:
        files: Uploaded reference images, in the order they were submitted
        config: Configuration (defaults to the global instance)
        negotiator: Pre-built negotiator (defaults to one built from *config*)
        observer: Optional callback receiving every work item transition

    Returns:
        One result per file in submission order, or a single error result
        when the batch cannot start
    """
    config = config or default_config

    try:
        controller = _prepare(files, config, negotiator)
    except ConfigurationError as exc:
        logger.error("Batch rejected: %s", exc.message)
        return [_batch_error(exc.message)]
    except ValueError as exc:
        logger.warning("Batch rejected: %s", exc)
        return [_batch_error(str(exc))]

    if observer is not None:
        controller.subscribe(observer)

    logger.info("Starting batch of %d image(s).", len(files))
    controller.submit(files)
    snapshots = controller.run()

    results = [snapshot.to_result() for snapshot in snapshots]
    logger.info(
        "Batch finished: %d succeeded, %d failed.",
        sum(1 for r in results if r.ok),
        sum(1 for r in results if not r.ok),
    )
    return results


def iter_batch_events(
    files: Sequence[SourceImage],
    config: IconforgeConfig | None = None,
    negotiator: Transformer | None = None,
) -> Iterator[QueueEvent]:
    """Streaming variant of :func:`iconify_batch`.

    Yields every ``pending`` event first, then the ``in-progress`` and
    terminal events of each item as they happen. A batch that cannot start
    yields a single ``failed`` event named ``"error"``.
    """
    config = config or default_config

    try:
        controller = _prepare(files, config, negotiator)
    except ConfigurationError as exc:
        logger.error("Batch rejected: %s", exc.message)
        yield QueueEvent(BATCH_ERROR_NAME, WorkStatus.FAILED, BATCH_ERROR_NAME, exc.message)
        return
    except ValueError as exc:
        logger.warning("Batch rejected: %s", exc)
        yield QueueEvent(BATCH_ERROR_NAME, WorkStatus.FAILED, BATCH_ERROR_NAME, str(exc))
        return

    for snapshot in controller.submit(files):
        yield QueueEvent(snapshot.id, snapshot.status, snapshot.output_name)
    yield from controller.drain()
