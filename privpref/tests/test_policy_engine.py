import itertools
import json

import pytest

from privpref.core.policy_engine import policy_engine as engine_mod
from privpref.core.policy_engine.policy_engine import PrivacyEvaluationEngine, evaluate
from privpref.core.policy_engine.policy_models import Verdict
from privpref.core.policy_engine.request_models import AppRequest, PolicyData, UserPreference
from privpref.core.policy_engine.retention import evaluate_retention
from privpref.core.policy_engine.taxonomy import PolicyNode, Taxonomy

EMAIL = PolicyNode(id="email", name="Email", left=1, right=2)
MARKETING = PolicyNode(id="marketing", name="Marketing", left=1, right=2)


def _policy() -> PolicyData:
    return PolicyData(
        attributes=Taxonomy(nodes=(EMAIL,)),
        purposes=Taxonomy(nodes=(MARKETING,)),
        version="1",
    )


def _app(retention: int = 30) -> AppRequest:
    return AppRequest(attributes=(EMAIL,), purposes=(MARKETING,), time_of_retention=retention)


def _pref(**overrides) -> UserPreference:
    fields = dict(
        attribute_ids=("email",),
        allowed_purpose_ids=("marketing",),
        time_of_retention=30,
    )
    fields.update(overrides)
    return UserPreference(**fields)


def _policy_doc() -> dict:
    return {
        "version": "1",
        "attributes": [{"id": "email", "name": "Email", "left": 1, "right": 2}],
        "purposes": [{"id": "marketing", "name": "Marketing", "left": 1, "right": 2}],
    }


def test_full_match_grants():
    result = evaluate(_app(), _pref(), _policy())

    assert result.verdict is Verdict.GRANT
    assert result.verdict.code == 1
    assert result.metadata["checks"] == {"attributes": True, "purposes": True, "retention": True}


def test_exception_on_requested_attribute_denies():
    result = evaluate(_app(), _pref(exception_ids=("email",)), _policy())

    assert result.verdict is Verdict.DENY
    assert result.reason == "Failed checks: attributes"


def test_longer_app_retention_denies():
    result = evaluate(_app(retention=31), _pref(), _policy())

    assert result.verdict is Verdict.DENY
    assert result.metadata["checks"]["retention"] is False


def test_empty_allow_lists_deny():
    result = evaluate(_app(), _pref(attribute_ids=(), allowed_purpose_ids=()), _policy())

    assert result.verdict is Verdict.DENY
    assert result.reason == "Failed checks: attributes, purposes"


def test_retention_boundary_is_inclusive():
    assert evaluate_retention(_app(30), _pref(time_of_retention=30)) is True
    assert evaluate_retention(_app(31), _pref(time_of_retention=30)) is False
    assert evaluate_retention(_app(0), _pref(time_of_retention=0)) is True


def test_verdict_is_conjunction_of_the_three_checks():
    policy = _policy()
    for allow_attr, allow_purpose, app_retention in itertools.product(
        [(), ("email",)], [(), ("marketing",)], [29, 30, 31]
    ):
        pref = _pref(attribute_ids=allow_attr, allowed_purpose_ids=allow_purpose)
        result = evaluate(_app(app_retention), pref, policy)

        expected = bool(allow_attr) and bool(allow_purpose) and app_retention <= 30
        assert result.granted is expected
        assert all(result.metadata["checks"].values()) is expected


def test_evaluation_is_deterministic():
    engine = PrivacyEvaluationEngine()
    first = engine.evaluate(_app(), _pref(), _policy(), trace_id="t-1")
    second = engine.evaluate(_app(), _pref(), _policy(), trace_id="t-1")
    assert first == second


def test_engine_carries_trace_id():
    result = PrivacyEvaluationEngine().evaluate(_app(), _pref(), _policy(), trace_id="abc")
    assert result.trace_id == "abc"


def test_engine_rejects_wrong_input_types():
    result = PrivacyEvaluationEngine().evaluate({"attributes": []}, _pref(), _policy())

    assert result.verdict is Verdict.ERROR
    assert result.success is False
    assert result.verdict.code == -1


def test_evaluation_exception_becomes_error(monkeypatch):
    def boom(*_args):
        raise RuntimeError("boom")

    monkeypatch.setattr(engine_mod, "evaluate_attributes", boom)
    result = PrivacyEvaluationEngine().evaluate(_app(), _pref(), _policy())

    assert result.verdict is Verdict.ERROR
    assert result.reason == "Evaluation exception: RuntimeError"


def test_evaluate_payloads_from_json_documents():
    app = json.dumps({"attributes": ["email"], "purposes": ["marketing"], "timeofRetention": 30})
    pref = json.dumps(
        {"attributes": ["email"], "allowedPurposes": ["marketing"], "timeofRetention": 30}
    )

    result = PrivacyEvaluationEngine().evaluate_payloads(app, pref, json.dumps(_policy_doc()))
    assert result.verdict is Verdict.GRANT


def test_evaluate_payloads_accepts_domain_objects():
    result = PrivacyEvaluationEngine().evaluate_payloads(_app(), _pref(), _policy())
    assert result.verdict is Verdict.GRANT


def test_unmaterializable_input_yields_error():
    engine = PrivacyEvaluationEngine()
    result = engine.evaluate_payloads(b"{not json", _pref(), _policy(), trace_id="t")

    assert result.verdict is Verdict.ERROR
    assert result.trace_id == "t"
    assert result.metadata == {"error_type": "InputMaterializationError"}


def test_missing_field_yields_error():
    app = {"attributes": ["email"], "purposes": ["marketing"]}
    result = PrivacyEvaluationEngine().evaluate_payloads(app, _pref(), _policy())
    assert result.verdict is Verdict.ERROR


def test_strict_engine_rejects_malformed_taxonomy():
    doc = _policy_doc()
    doc["attributes"] = [
        {"id": "a", "left": 1, "right": 6},
        {"id": "email", "left": 4, "right": 8},
    ]
    app = {"attributes": ["email"], "purposes": ["marketing"], "timeofRetention": 30}

    lenient = PrivacyEvaluationEngine().evaluate_payloads(app, _pref(), doc)
    strict = PrivacyEvaluationEngine(strict_taxonomy=True).evaluate_payloads(app, _pref(), doc)

    assert lenient.verdict is Verdict.GRANT
    assert strict.verdict is Verdict.ERROR
    assert strict.metadata["error_type"] == "InvalidTaxonomy"


def test_engine_from_env(monkeypatch):
    monkeypatch.setenv("PRIVPREF_MAX_NODES", "4")
    monkeypatch.setenv("PRIVPREF_VALIDATE_TAXONOMY", "1")

    engine = PrivacyEvaluationEngine.from_env()
    assert engine.limits.max_nodes == 4
    assert engine.strict_taxonomy is True


def test_engine_requires_limits_instance():
    with pytest.raises(TypeError):
        PrivacyEvaluationEngine(limits={"max_nodes": 3})


def test_deeply_nested_input_yields_error():
    app = '{"a":' + "[" * 30000 + "]" * 30000 + "}"

    result = PrivacyEvaluationEngine().evaluate_payloads(app, _pref(), _policy(), trace_id="deep")

    assert result.verdict is Verdict.ERROR
    assert result.trace_id == "deep"
    assert result.metadata == {"error_type": "InputMaterializationError"}
