"""
Evaluation service client.
"""

import httpx
from typing import Any, Mapping

from pydantic import ValidationError as PydanticValidationError

from shared.errors import NetworkError, ProtocolError, ValidationError
from shared.logging import get_logger

from ..models import FeatureMap, FeaturesResponse
from ..resolution.context import Params
from .version import SDK_VERSION, SDK_VERSION_HEADER_NAME


class EvaluationClient:
    """Fetches evaluated features for a context from the evaluation service.

    Every failure mode is raised as one of ``NetworkError``,
    ``ProtocolError`` or ``ValidationError``; the resolver turns them into
    cache failure entries.
    """

    EVALUATE_PATH = "features/evaluated"

    def __init__(self, api_base_url: str, publishable_key: str, timeout_ms: float = 5000):
        self.api_base_url = api_base_url.rstrip("/")
        self.publishable_key = publishable_key
        self.timeout_ms = timeout_ms
        self.logger = get_logger("features_sdk.evaluation_client")

    @property
    def evaluate_url(self) -> str:
        return f"{self.api_base_url}/{self.EVALUATE_PATH}"

    async def fetch_features(self, context: Mapping[str, Any], params: Params) -> FeatureMap:
        """GET the evaluated feature map for ``params``."""
        query = list(params) + [(SDK_VERSION_HEADER_NAME, SDK_VERSION)]

        try:
            async with httpx.AsyncClient(timeout=self.timeout_ms / 1000) as client:
                response = await client.get(
                    self.evaluate_url,
                    params=query,
                    headers={SDK_VERSION_HEADER_NAME: SDK_VERSION}
                )
        except httpx.TimeoutException as e:
            raise NetworkError(
                "Evaluation request timed out",
                details={"timeout_ms": self.timeout_ms, "error": str(e)}
            ) from e
        except httpx.HTTPError as e:
            raise NetworkError(
                "Evaluation service unavailable",
                details={"http_error": str(e)}
            ) from e

        if not response.is_success:
            raise ProtocolError(
                response.status_code,
                "Unexpected response code from evaluation service",
                details={"body": response.text[:500]}
            )

        try:
            parsed = FeaturesResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise ValidationError(
                "Unable to validate evaluation response",
                details={"error": str(e)}
            ) from e

        if not parsed.success:
            raise ValidationError("Evaluation service reported failure")

        self.logger.debug("Fetched features", count=len(parsed.features))
        return parsed.features
