import hashlib
import json
from typing import Any, Dict, List

from privpref.core.policy_engine.request_models import AppRequest, PolicyData, UserPreference
from privpref.core.policy_engine.taxonomy import PolicyNode, Taxonomy


def _node(node: PolicyNode) -> List[Any]:
    return [node.id, node.left, node.right]


def _taxonomy(taxonomy: Taxonomy) -> List[List[Any]]:
    return [_node(n) for n in taxonomy]


def _app(app: AppRequest) -> Dict[str, Any]:
    return {
        "attributes": [_node(n) for n in app.attributes],
        "purposes": [_node(n) for n in app.purposes],
        "time_of_retention": app.time_of_retention,
    }


def _preference(pref: UserPreference) -> Dict[str, Any]:
    return {
        "attribute_ids": list(pref.attribute_ids),
        "exception_ids": list(pref.exception_ids),
        "deny_attribute_ids": list(pref.deny_attribute_ids),
        "allowed_purpose_ids": list(pref.allowed_purpose_ids),
        "prohibited_purpose_ids": list(pref.prohibited_purpose_ids),
        "deny_purpose_ids": list(pref.deny_purpose_ids),
        "time_of_retention": pref.time_of_retention,
    }


def policy_fingerprint(policy: PolicyData) -> str:
    """
    Identify a policy snapshot by a digest of both taxonomies, prefixed with
    its declared version when present. Node names are excluded since they
    never affect evaluation.

    Security notes:
    - The version is caller-supplied on /evaluate, so it never stands in for
      the intervals: two snapshots sharing a version but not their intervals
      get different fingerprints.
    """
    digest = "sha256:" + _digest(
        {"attributes": _taxonomy(policy.attributes), "purposes": _taxonomy(policy.purposes)}
    )
    if policy.version is not None:
        return f"v:{policy.version}:{digest}"
    return digest


def decision_key(app: AppRequest, preference: UserPreference, policy: PolicyData) -> str:
    """
    Compute a deterministic cache key for one evaluation.
    """
    return _digest(
        {
            "app": _app(app),
            "preference": _preference(preference),
            "policy": policy_fingerprint(policy),
        }
    )


def _digest(payload: Any) -> str:
    serialized = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(serialized.encode("utf-8")).hexdigest()
