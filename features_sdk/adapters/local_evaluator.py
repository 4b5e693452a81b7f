"""
Adapter exposing a local ``evaluate(context)`` function as a feature fetcher.
"""

from typing import Any, Awaitable, Callable, Dict, Mapping, Optional

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from shared.errors import EvaluationError, ValidationError
from shared.logging import get_logger

from ..models import FeatureMap, ResolvedFeature
from ..resolution.context import Params

Evaluator = Callable[[Mapping[str, Any]], Mapping[str, Any]]
EvaluatedHook = Callable[[Mapping[str, Any], FeatureMap], Awaitable[None]]

_FEATURE_MAP = TypeAdapter(Dict[str, ResolvedFeature])


class LocalEvaluationFetcher:
    """Runs the targeting evaluator in-process instead of calling the service.

    ``on_evaluated`` is awaited after every successful evaluation; the client
    uses it to record ``evaluate`` analytics events.
    """

    def __init__(self, evaluator: Evaluator, on_evaluated: Optional[EvaluatedHook] = None):
        self.evaluator = evaluator
        self.on_evaluated = on_evaluated
        self.logger = get_logger("features_sdk.local_evaluator")

    async def fetch_features(self, context: Mapping[str, Any], params: Params) -> FeatureMap:
        try:
            raw = self.evaluator(context)
        except Exception as e:
            raise EvaluationError("Local evaluator raised", details={"error": str(e)}) from e

        try:
            features = _FEATURE_MAP.validate_python(raw)
        except PydanticValidationError as e:
            raise ValidationError("Local evaluation result failed validation", details={"error": str(e)}) from e

        if self.on_evaluated is not None:
            await self.on_evaluated(context, features)

        self.logger.debug("Evaluated features locally", count=len(features))
        return features
