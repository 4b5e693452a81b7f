"""
Data models for resolved features, cache entries and buffered events.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator
from pydantic.alias_generators import to_camel


class WireModel(BaseModel):
    """Base for models serialized with camelCase keys on the wire."""

    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )

    def to_wire(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class FeatureConfig(WireModel):
    """Dynamic configuration attached to a feature."""

    key: str
    payload: Any = None
    version: Optional[int] = None
    rule_evaluation_results: Optional[List[bool]] = None
    missing_context_fields: Optional[List[str]] = None


class ResolvedFeature(WireModel):
    """Result of evaluating one feature for a context.

    Accepts both the current wire shape (``isEnabled``/``targetingVersion``)
    and the legacy one (``value``/``version``).
    """

    key: str
    is_enabled: bool
    targeting_version: Optional[int] = None
    config: Optional[FeatureConfig] = None
    rule_evaluation_results: Optional[List[bool]] = None
    missing_context_fields: Optional[List[str]] = None

    @model_validator(mode="before")
    @classmethod
    def _accept_legacy_fields(cls, data: Any) -> Any:
        if isinstance(data, dict):
            data = dict(data)
            if "isEnabled" not in data and "is_enabled" not in data and "value" in data:
                data["isEnabled"] = data.pop("value")
            if "targetingVersion" not in data and "targeting_version" not in data and "version" in data:
                data["targetingVersion"] = data.pop("version")
        return data


FeatureMap = Dict[str, ResolvedFeature]


class FeaturesResponse(BaseModel):
    """Evaluation endpoint response body."""

    success: bool
    features: Dict[str, ResolvedFeature]

    @model_validator(mode="after")
    def _keys_match(self) -> "FeaturesResponse":
        for key, feature in self.features.items():
            if feature.key != key:
                raise ValueError(f"feature key mismatch: {key!r} != {feature.key!r}")
        return self


class CacheEntry(WireModel):
    """Persisted cache record; timestamps are epoch milliseconds."""

    success: bool
    attempt_count: int = Field(ge=0)
    stale_at: float
    expire_at: float
    updated_at: float
    features: Optional[Dict[str, ResolvedFeature]] = None


@dataclass(frozen=True)
class CacheResult:
    """View of an unexpired cache entry at read time."""

    value: Optional[FeatureMap]
    success: bool
    stale: bool
    attempt_count: int
    updated_at: float


@dataclass(frozen=True)
class CheckEvent:
    """A read of a feature's resolved value by application code."""

    key: str
    value: Any
    version: Optional[int] = None
    rule_evaluation_results: Optional[List[bool]] = None
    missing_context_fields: Optional[List[str]] = None


class UserUpdate(WireModel):
    type: Literal["user-update"] = "user-update"
    user_id: str
    attributes: Dict[str, Any] = Field(default_factory=dict)


class CompanyUpdate(WireModel):
    type: Literal["company-update"] = "company-update"
    company_id: str
    user_id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)


class TrackEvent(WireModel):
    type: Literal["track-event"] = "track-event"
    event: str
    user_id: str
    company_id: Optional[str] = None
    attributes: Dict[str, Any] = Field(default_factory=dict)


class FeatureEvent(WireModel):
    type: Literal["feature-event"] = "feature-event"
    action: Literal["check", "evaluate"]
    key: str
    targeting_version: Optional[int] = None
    eval_context: Dict[str, Any] = Field(default_factory=dict)
    eval_result: Any = None
    eval_rule_results: Optional[List[bool]] = None
    eval_missing_fields: Optional[List[str]] = None


BufferedEvent = Union[UserUpdate, CompanyUpdate, TrackEvent, FeatureEvent]
