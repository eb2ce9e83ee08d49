import json

import pytest

from privpref.core.policy_engine.limits import EngineLimits
from privpref.core.policy_engine.payloads import (
    materialize_app,
    materialize_policy,
    materialize_preference,
)
from privpref.core.policy_engine.policy_exceptions import (
    InputMaterializationError,
    PolicyConfigurationError,
    PolicyError,
)
from privpref.core.policy_engine.taxonomy import PolicyNode

LIMITS = EngineLimits()

POLICY_DOC = {
    "version": 3,
    "attributes": [
        {"_id": "location", "name": "Location", "left": 1, "right": 6},
        {"_id": "gps", "name": "GPS", "left": 2, "right": 3},
    ],
    "purposes": [{"id": "analytics", "name": "Analytics", "left": 1, "right": 2}],
}


def test_policy_accepts_mongo_ids_and_numeric_version():
    policy = materialize_policy(json.dumps(POLICY_DOC), LIMITS)

    assert policy.version == "3"
    assert policy.attributes.get("gps") == PolicyNode(id="gps", name="GPS", left=2, right=3)
    assert "analytics" in policy.purposes


def test_policy_rejects_non_integer_bounds():
    doc = dict(POLICY_DOC, purposes=[{"id": "x", "left": "1", "right": 2}])
    with pytest.raises(InputMaterializationError):
        materialize_policy(doc, LIMITS)


def test_policy_rejects_duplicate_ids():
    doc = dict(POLICY_DOC, purposes=[
        {"id": "x", "left": 1, "right": 2},
        {"id": "x", "left": 3, "right": 4},
    ])
    with pytest.raises(PolicyConfigurationError):
        materialize_policy(doc, LIMITS)


def test_preference_unwraps_privacy_preference_and_reads_aliases():
    doc = {
        "fullName": "Test User",
        "privacyPreference": {
            "attributes": ["location"],
            "exceptions": ["gps"],
            "denyAttributes": ["contact"],
            "allowedPurposes": ["analytics"],
            "prohibitedPurposes": ["marketing"],
            "denyPurposes": ["marketing"],
            "timeofRetention": 3600,
        },
    }
    pref = materialize_preference(doc, LIMITS)

    assert pref.attribute_ids == ("location",)
    assert pref.exception_ids == ("gps",)
    assert pref.deny_attribute_ids == ("contact",)
    assert pref.allowed_purpose_ids == ("analytics",)
    assert pref.prohibited_purpose_ids == ("marketing",)
    assert pref.deny_purpose_ids == ("marketing",)
    assert pref.time_of_retention == 3600


def test_preference_accepts_snake_case_and_defaults_lists():
    pref = materialize_preference({"attribute_ids": ["gps"], "time_of_retention": 10}, LIMITS)

    assert pref.attribute_ids == ("gps",)
    assert pref.exception_ids == ()
    assert pref.allowed_purpose_ids == ()


def test_preference_requires_retention():
    with pytest.raises(InputMaterializationError, match="preference"):
        materialize_preference({"attributes": ["gps"]}, LIMITS)


def test_app_resolves_bare_ids_against_policy():
    policy = materialize_policy(POLICY_DOC, LIMITS)
    app = materialize_app(
        {"attributes": ["gps"], "purposes": ["analytics"], "timeofRetention": 60}, policy, LIMITS
    )

    assert app.attributes == (policy.attributes.get("gps"),)
    assert app.purposes[0].id == "analytics"
    assert app.time_of_retention == 60


def test_app_accepts_full_nodes():
    policy = materialize_policy(POLICY_DOC, LIMITS)
    raw = {
        "attributes": [{"id": "custom", "name": "Custom", "left": 2, "right": 3}],
        "purposes": [],
        "time_of_retention": 5,
    }
    app = materialize_app(raw, policy, LIMITS)

    assert app.attributes == (PolicyNode(id="custom", name="Custom", left=2, right=3),)
    assert app.purposes == ()


def test_app_rejects_unknown_bare_id():
    policy = materialize_policy(POLICY_DOC, LIMITS)
    raw = {"attributes": ["nope"], "purposes": [], "timeofRetention": 1}
    with pytest.raises(InputMaterializationError, match="unknown taxonomy id 'nope'"):
        materialize_app(raw, policy, LIMITS)


def test_app_requires_both_axes():
    policy = materialize_policy(POLICY_DOC, LIMITS)
    with pytest.raises(InputMaterializationError):
        materialize_app({"attributes": ["gps"], "timeofRetention": 1}, policy, LIMITS)


def test_invalid_json_and_non_object_documents_are_rejected():
    with pytest.raises(InputMaterializationError, match="invalid JSON"):
        materialize_preference("{oops", LIMITS)
    with pytest.raises(InputMaterializationError, match="must be an object"):
        materialize_preference(b"[1, 2]", LIMITS)
    with pytest.raises(InputMaterializationError, match="unsupported input type"):
        materialize_preference(42, LIMITS)


def test_payload_size_limit():
    limits = EngineLimits(max_payload_bytes=16)
    with pytest.raises(InputMaterializationError, match="exceeds 16 bytes"):
        materialize_policy(json.dumps(POLICY_DOC), limits)


def test_node_count_limit():
    limits = EngineLimits(max_nodes=1)
    with pytest.raises(InputMaterializationError, match="policy.attributes"):
        materialize_policy(POLICY_DOC, limits)

    raw = {"attributes": ["a", "b"], "timeofRetention": 1}
    with pytest.raises(InputMaterializationError, match="preference.attribute_ids"):
        materialize_preference(raw, limits)


def test_materialization_errors_share_a_base():
    assert issubclass(InputMaterializationError, PolicyError)
    assert issubclass(PolicyConfigurationError, PolicyError)


def test_limits_validate_and_read_env(monkeypatch):
    with pytest.raises(ValueError):
        EngineLimits(max_nodes=0)

    monkeypatch.setenv("PRIVPREF_MAX_PAYLOAD_BYTES", "1024")
    monkeypatch.setenv("PRIVPREF_MAX_NODES", "not-a-number")
    limits = EngineLimits.from_env()
    assert limits.max_payload_bytes == 1024
    assert limits.max_nodes == 256


def test_deeply_nested_document_is_rejected():
    raw = '{"a":' + "[" * 30000 + "]" * 30000 + "}"
    assert len(raw.encode("utf-8")) <= LIMITS.max_payload_bytes

    with pytest.raises(InputMaterializationError, match="nested too deeply"):
        materialize_preference(raw, LIMITS)
