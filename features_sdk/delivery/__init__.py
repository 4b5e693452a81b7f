"""
Event delivery package.

Batches user/company updates, track events and feature events and hands
them to the bulk endpoint with bounded retries.
"""

from .batch_buffer import BatchBuffer, RetryItem

__all__ = ["BatchBuffer", "RetryItem"]
