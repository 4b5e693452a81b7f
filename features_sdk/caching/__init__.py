"""
Feature caching package.

Holds the TTL-aware cache of resolved feature maps. Entries carry both a
stale deadline (serve but refresh) and an expire deadline (never serve).
"""

from .feature_cache import FeatureCache

__all__ = ["FeatureCache"]
