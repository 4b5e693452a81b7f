"""
Rate limiting package.

Sliding-window admission control for check/evaluate analytics events.
"""

from .sliding_window import SlidingWindowRateLimiter

__all__ = ["SlidingWindowRateLimiter"]
