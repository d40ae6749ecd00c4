"""Iconforge - Batch 3D icon generation from reference images."""

__version__ = "0.1.0"

from iconforge.core.batch_queue import BatchQueueController
from iconforge.core.config import IconforgeConfig, config
from iconforge.core.negotiator import RequestNegotiator
from iconforge.core.service import iconify_batch

__all__ = [
    "BatchQueueController",
    "IconforgeConfig",
    "RequestNegotiator",
    "config",
    "iconify_batch",
]
