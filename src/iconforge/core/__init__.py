"""Core functionality for icon generation.

This module provides the core components of Iconforge:

- **RequestNegotiator**: Two-tier request negotiation with the OpenAI image edit endpoint
- **BatchQueueController**: Sequential, observable per-file processing queue
- **iconify_batch**: Batch-level validation and result mapping
- **IconforgeConfig**: Configuration management using Pydantic Settings
- **config**: Global configuration instance (loads from environment variables)

Architecture Overview
---------------------
The core module follows a layered architecture:

1. **Configuration Layer** (config.py):
   - Environment-based configuration using Pydantic Settings
   - Settings prefixed with ICONFORGE_ (plus the conventional OPENAI_API_KEY)

2. **Negotiation Layer** (negotiator.py):
   - Optimistic transparent-background request, conservative fallback
   - Inline base64 preferred, linked images downloaded with httpx

3. **Queue Layer** (batch_queue.py):
   - One work item per uploaded file, strictly ordered
   - pending -> in-progress -> complete/failed, pushed to observers

4. **Support Modules**:
   - models.py: Work items, snapshots, events and results
   - style_preset.py: Baked style preset and instruction assembly
   - errors.py: Error taxonomy
   - service.py: Batch entry points for the HTTP layer

Usage Example
-------------
    from iconforge.core import SourceImage, config, iconify_batch

    results = iconify_batch(
        [SourceImage(content=data, filename="car.png", media_type="image/png")],
        config,
    )
    for result in results:
        print(result.name, result.error or len(result.b64))
"""

from iconforge.core.batch_queue import BatchQueueController
from iconforge.core.config import IconforgeConfig, config
from iconforge.core.models import (
    IconResult,
    QueueEvent,
    SourceImage,
    WorkItem,
    WorkItemSnapshot,
    WorkStatus,
    derive_output_name,
)
from iconforge.core.negotiator import RequestNegotiator
from iconforge.core.service import iconify_batch, iter_batch_events

__all__ = [
    "BatchQueueController",
    "IconResult",
    "IconforgeConfig",
    "QueueEvent",
    "RequestNegotiator",
    "SourceImage",
    "WorkItem",
    "WorkItemSnapshot",
    "WorkStatus",
    "config",
    "derive_output_name",
    "iconify_batch",
    "iter_batch_events",
]
