from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterable, Optional, Tuple

from .taxonomy import PolicyNode, Taxonomy


def _as_int(name: str, value: object) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{name} must be an integer")
    return value


def _as_ids(name: str, value: Iterable[str]) -> Tuple[str, ...]:
    if isinstance(value, (str, bytes)):
        raise TypeError(f"{name} must be a sequence of ids, not a string")
    ids = tuple(value)
    for item in ids:
        if not isinstance(item, str):
            raise TypeError(f"{name} must contain only strings")
    return ids


@dataclass(frozen=True)
class AppRequest:
    """
    What an application asks for: the attribute nodes it wants to collect, the
    purpose nodes it wants to use them for, and how long it keeps the data.
    """

    attributes: Tuple[PolicyNode, ...] = ()
    purposes: Tuple[PolicyNode, ...] = ()
    time_of_retention: int = 0

    def __post_init__(self) -> None:
        for name in ("attributes", "purposes"):
            nodes = tuple(getattr(self, name))
            if not all(isinstance(n, PolicyNode) for n in nodes):
                raise TypeError(f"AppRequest.{name} must contain only PolicyNode instances")
            object.__setattr__(self, name, nodes)
        _as_int("AppRequest.time_of_retention", self.time_of_retention)


@dataclass(frozen=True)
class UserPreference:
    """
    One user's stance, referencing taxonomy nodes by id only.

    deny_attribute_ids and deny_purpose_ids are carried for completeness; the
    deny checks currently read the exception lists.
    """

    attribute_ids: Tuple[str, ...] = ()
    exception_ids: Tuple[str, ...] = ()
    deny_attribute_ids: Tuple[str, ...] = ()
    allowed_purpose_ids: Tuple[str, ...] = ()
    prohibited_purpose_ids: Tuple[str, ...] = ()
    deny_purpose_ids: Tuple[str, ...] = ()
    time_of_retention: int = 0

    def __post_init__(self) -> None:
        for name in (
            "attribute_ids",
            "exception_ids",
            "deny_attribute_ids",
            "allowed_purpose_ids",
            "prohibited_purpose_ids",
            "deny_purpose_ids",
        ):
            object.__setattr__(self, name, _as_ids(f"UserPreference.{name}", getattr(self, name)))
        _as_int("UserPreference.time_of_retention", self.time_of_retention)


@dataclass(frozen=True)
class PolicyData:
    """The attribute and purpose taxonomies in force for one evaluation."""

    attributes: Taxonomy = field(default_factory=Taxonomy)
    purposes: Taxonomy = field(default_factory=Taxonomy)
    version: Optional[str] = None

    def __post_init__(self) -> None:
        for name in ("attributes", "purposes"):
            value = getattr(self, name)
            if not isinstance(value, Taxonomy):
                object.__setattr__(self, name, Taxonomy(nodes=tuple(value)))
