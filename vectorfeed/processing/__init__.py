"""
VectorFeed Processing Module
============================

Work queue, message models, pipeline orchestrator and queue consumer.
"""

from .messages import FeedDiscoveryMessage, EntryProcessingMessage, parse_message
from .work_queue import WorkQueue, QueuedMessage
from .pipeline import ProcessingPipeline, BatchResult, MessageOutcomeType
from .consumer import QueueConsumer

__all__ = [
    'FeedDiscoveryMessage',
    'EntryProcessingMessage',
    'parse_message',
    'WorkQueue',
    'QueuedMessage',
    'ProcessingPipeline',
    'BatchResult',
    'MessageOutcomeType',
    'QueueConsumer',
]
