"""
Feature Access SDK.

Client-side resolution of feature flags against a remote evaluation
service, with a TTL cache, local overrides, rate-limited analytics and
batched event delivery.
"""

from .client import FeaturesClient
from .models import (
    CheckEvent,
    CompanyUpdate,
    FeatureConfig,
    FeatureEvent,
    FeatureMap,
    ResolvedFeature,
    TrackEvent,
    UserUpdate,
)

__version__ = "0.1.0"

__all__ = [
    "FeaturesClient",
    "CheckEvent",
    "CompanyUpdate",
    "FeatureConfig",
    "FeatureEvent",
    "FeatureMap",
    "ResolvedFeature",
    "TrackEvent",
    "UserUpdate",
]
