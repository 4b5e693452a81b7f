"""
Adapters package for the Feature Access SDK.

Contains the collaborators the resolver and batch buffer talk to:

- EvaluationClient: HTTP fetch of evaluated features
- LocalEvaluationFetcher: in-process evaluation through a supplied function
- EventsClient: single and bulk analytics delivery

Adapters raise the shared error types; they never decide fallback
behaviour themselves.
"""

from .evaluation_client import EvaluationClient
from .events_client import EventsClient
from .local_evaluator import LocalEvaluationFetcher

__all__ = [
    "EvaluationClient",
    "EventsClient",
    "LocalEvaluationFetcher",
]
