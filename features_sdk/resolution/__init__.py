"""
Context resolution: cache keys, fetch parameters and the resolver state machine.
"""

from .context import Params, context_fingerprint, fetch_params, flatten_context
from .resolver import Decision, FeatureFetcher, FeatureResolver

__all__ = [
    "Params",
    "context_fingerprint",
    "fetch_params",
    "flatten_context",
    "Decision",
    "FeatureFetcher",
    "FeatureResolver",
]
