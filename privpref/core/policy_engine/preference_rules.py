from __future__ import annotations

from enum import Enum
from typing import Iterable, Sequence

from .request_models import AppRequest, PolicyData, UserPreference
from .taxonomy import PolicyNode, Taxonomy, is_descendant_or_self


class RuleKind(Enum):
    """The three list categories of a user preference."""

    ALLOW = "allow"
    EXCEPT = "except"
    DENY = "deny"


def _any_covered(
    requested: Iterable[PolicyNode], reference_ids: Sequence[str], taxonomy: Taxonomy
) -> bool:
    """
    True if at least one requested node lies at or below at least one
    referenced taxonomy node. Reference ids unknown to the taxonomy match
    nothing.
    """

    anchors = [node for node in (taxonomy.get(rid) for rid in reference_ids) if node is not None]
    if not anchors:
        return False

    for candidate in requested:
        for anchor in anchors:
            if is_descendant_or_self(anchor, candidate):
                return True
    return False


def _attribute_reference_ids(preference: UserPreference, kind: RuleKind) -> Sequence[str]:
    # deny_attribute_ids is not consulted: DENY reads the exception list.
    match kind:
        case RuleKind.ALLOW:
            return preference.attribute_ids
        case RuleKind.EXCEPT | RuleKind.DENY:
            return preference.exception_ids


def _purpose_reference_ids(preference: UserPreference, kind: RuleKind) -> Sequence[str]:
    # deny_purpose_ids is not consulted: DENY reads the prohibited list.
    match kind:
        case RuleKind.ALLOW:
            return preference.allowed_purpose_ids
        case RuleKind.EXCEPT | RuleKind.DENY:
            return preference.prohibited_purpose_ids


def attribute_check(
    app: AppRequest, preference: UserPreference, policy: PolicyData, kind: RuleKind
) -> bool:
    """Existential match of the app's attributes against one preference list."""

    return _any_covered(
        app.attributes, _attribute_reference_ids(preference, kind), policy.attributes
    )


def purpose_check(
    app: AppRequest, preference: UserPreference, policy: PolicyData, kind: RuleKind
) -> bool:
    """Existential match of the app's purposes against one preference list."""

    return _any_covered(app.purposes, _purpose_reference_ids(preference, kind), policy.purposes)


def evaluate_attributes(app: AppRequest, preference: UserPreference, policy: PolicyData) -> bool:
    """
    Attribute axis verdict: allowed and not excepted and not denied.

    One allowed attribute is enough for the allow check to pass for the whole
    request; likewise one excepted attribute fails it.
    """

    allowed = attribute_check(app, preference, policy, RuleKind.ALLOW)
    excepted = attribute_check(app, preference, policy, RuleKind.EXCEPT)
    denied = attribute_check(app, preference, policy, RuleKind.DENY)
    return allowed and not excepted and not denied


def evaluate_purposes(app: AppRequest, preference: UserPreference, policy: PolicyData) -> bool:
    """Purpose axis verdict: allowed and not prohibited and not denied."""

    allowed = purpose_check(app, preference, policy, RuleKind.ALLOW)
    excepted = purpose_check(app, preference, policy, RuleKind.EXCEPT)
    denied = purpose_check(app, preference, policy, RuleKind.DENY)
    return allowed and not excepted and not denied
