from __future__ import annotations

import json
from typing import Any, Dict, List, Mapping, Optional, Union

from pydantic import (
    AliasChoices,
    BaseModel,
    ConfigDict,
    Field,
    StrictInt,
    StrictStr,
    ValidationError,
)

from .limits import EngineLimits
from .policy_exceptions import InputMaterializationError
from .request_models import AppRequest, PolicyData, UserPreference
from .taxonomy import PolicyNode, Taxonomy

RawInput = Union[str, bytes, bytearray, Mapping[str, Any]]


class PolicyNodePayload(BaseModel):
    """Wire form of a taxonomy node. Stored documents may carry the id as `_id`."""

    model_config = ConfigDict(extra="ignore")

    id: StrictStr = Field(min_length=1, validation_alias=AliasChoices("id", "_id"))
    name: StrictStr = ""
    left: StrictInt
    right: StrictInt

    def to_domain(self) -> PolicyNode:
        return PolicyNode(id=self.id, name=self.name, left=self.left, right=self.right)


class AppRequestPayload(BaseModel):
    """Wire form of an app request.

    attributes/purposes entries are either full nodes or bare ids that are
    resolved against the policy taxonomy in force.
    """

    model_config = ConfigDict(extra="ignore")

    attributes: List[Union[PolicyNodePayload, StrictStr]]
    purposes: List[Union[PolicyNodePayload, StrictStr]]
    time_of_retention: StrictInt = Field(
        validation_alias=AliasChoices("timeofRetention", "time_of_retention")
    )


class UserPreferencePayload(BaseModel):
    """Wire form of a user's privacy preference (ids only)."""

    model_config = ConfigDict(extra="ignore")

    attribute_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices("attributeIds", "attribute_ids", "attributes"),
    )
    exception_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices("exceptionIds", "exception_ids", "exceptions"),
    )
    deny_attribute_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices("denyAttributeIds", "deny_attribute_ids", "denyAttributes"),
    )
    allowed_purpose_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "allowedPurposeIds", "allowed_purpose_ids", "allowedPurposes"
        ),
    )
    prohibited_purpose_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices(
            "prohibitedPurposeIds", "prohibited_purpose_ids", "prohibitedPurposes"
        ),
    )
    deny_purpose_ids: List[StrictStr] = Field(
        default_factory=list,
        validation_alias=AliasChoices("denyPurposeIds", "deny_purpose_ids", "denyPurposes"),
    )
    time_of_retention: StrictInt = Field(
        validation_alias=AliasChoices("timeofRetention", "time_of_retention")
    )

    def to_domain(self) -> UserPreference:
        return UserPreference(
            attribute_ids=tuple(self.attribute_ids),
            exception_ids=tuple(self.exception_ids),
            deny_attribute_ids=tuple(self.deny_attribute_ids),
            allowed_purpose_ids=tuple(self.allowed_purpose_ids),
            prohibited_purpose_ids=tuple(self.prohibited_purpose_ids),
            deny_purpose_ids=tuple(self.deny_purpose_ids),
            time_of_retention=self.time_of_retention,
        )


class PolicyDataPayload(BaseModel):
    """Wire form of the policy taxonomies."""

    model_config = ConfigDict(extra="ignore")

    attributes: List[PolicyNodePayload]
    purposes: List[PolicyNodePayload]
    version: Optional[Union[StrictStr, StrictInt]] = None

    def to_domain(self) -> PolicyData:
        return PolicyData(
            attributes=Taxonomy(nodes=tuple(n.to_domain() for n in self.attributes)),
            purposes=Taxonomy(nodes=tuple(n.to_domain() for n in self.purposes)),
            version=None if self.version is None else str(self.version),
        )


def _load_document(label: str, raw: RawInput, limits: EngineLimits) -> Dict[str, Any]:
    """Turn a JSON document or mapping into a plain dict, enforcing the size ceiling."""

    if isinstance(raw, Mapping):
        return dict(raw)

    if isinstance(raw, str):
        data = raw.encode("utf-8")
    elif isinstance(raw, (bytes, bytearray)):
        data = bytes(raw)
    else:
        raise InputMaterializationError(f"{label}: unsupported input type {type(raw).__name__}")

    if len(data) > limits.max_payload_bytes:
        raise InputMaterializationError(
            f"{label}: payload exceeds {limits.max_payload_bytes} bytes"
        )

    try:
        obj = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise InputMaterializationError(f"{label}: invalid JSON ({e.__class__.__name__})") from e
    except RecursionError as e:
        # Small documents can still nest deeper than the decoder's stack allows.
        raise InputMaterializationError(f"{label}: JSON nested too deeply") from e

    if not isinstance(obj, dict):
        raise InputMaterializationError(f"{label}: JSON document must be an object")
    return obj


def _describe(label: str, e: ValidationError) -> str:
    first = e.errors()[0] if e.errors() else {}
    loc = ".".join(str(p) for p in first.get("loc", ()))
    where = loc or "<root>"
    return f"{label}: {e.error_count()} invalid field(s); first: {where}: {first.get('msg', '')}"


def _check_count(label: str, count: int, limits: EngineLimits) -> None:
    if count > limits.max_nodes:
        raise InputMaterializationError(
            f"{label}: {count} entries exceeds limit {limits.max_nodes}"
        )


def materialize_policy(raw: RawInput, limits: EngineLimits) -> PolicyData:
    """Parse and validate the policy taxonomies."""

    doc = _load_document("policy", raw, limits)
    try:
        payload = PolicyDataPayload.model_validate(doc)
    except ValidationError as e:
        raise InputMaterializationError(_describe("policy", e)) from e

    _check_count("policy.attributes", len(payload.attributes), limits)
    _check_count("policy.purposes", len(payload.purposes), limits)
    return payload.to_domain()


def materialize_preference(raw: RawInput, limits: EngineLimits) -> UserPreference:
    """Parse and validate a user preference. A `privacyPreference` wrapper is unwrapped."""

    doc = _load_document("preference", raw, limits)
    inner = doc.get("privacyPreference")
    if isinstance(inner, Mapping):
        doc = dict(inner)

    try:
        payload = UserPreferencePayload.model_validate(doc)
    except ValidationError as e:
        raise InputMaterializationError(_describe("preference", e)) from e

    for name in (
        "attribute_ids",
        "exception_ids",
        "deny_attribute_ids",
        "allowed_purpose_ids",
        "prohibited_purpose_ids",
        "deny_purpose_ids",
    ):
        _check_count(f"preference.{name}", len(getattr(payload, name)), limits)
    return payload.to_domain()


def _resolve_nodes(
    label: str, entries: List[Union[PolicyNodePayload, str]], taxonomy: Taxonomy
) -> List[PolicyNode]:
    out: List[PolicyNode] = []
    for entry in entries:
        if isinstance(entry, PolicyNodePayload):
            out.append(entry.to_domain())
            continue
        node = taxonomy.get(entry)
        if node is None:
            raise InputMaterializationError(f"{label}: unknown taxonomy id '{entry}'")
        out.append(node)
    return out


def materialize_app(raw: RawInput, policy: PolicyData, limits: EngineLimits) -> AppRequest:
    """Parse and validate an app request, resolving bare ids against policy."""

    doc = _load_document("app", raw, limits)
    try:
        payload = AppRequestPayload.model_validate(doc)
    except ValidationError as e:
        raise InputMaterializationError(_describe("app", e)) from e

    _check_count("app.attributes", len(payload.attributes), limits)
    _check_count("app.purposes", len(payload.purposes), limits)

    return AppRequest(
        attributes=tuple(_resolve_nodes("app.attributes", payload.attributes, policy.attributes)),
        purposes=tuple(_resolve_nodes("app.purposes", payload.purposes, policy.purposes)),
        time_of_retention=payload.time_of_retention,
    )
