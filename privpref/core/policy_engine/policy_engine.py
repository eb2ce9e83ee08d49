from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Tuple, Union

from .limits import EngineLimits, env_bool
from .payloads import RawInput, materialize_app, materialize_policy, materialize_preference
from .policy_exceptions import PolicyError
from .policy_models import EvaluationResult, Verdict
from .preference_rules import evaluate_attributes, evaluate_purposes
from .request_models import AppRequest, PolicyData, UserPreference
from .retention import evaluate_retention
from .taxonomy import validate_taxonomy

log = logging.getLogger("privpref.engine")

CHECK_NAMES = ("attributes", "purposes", "retention")


def evaluate(
    app: AppRequest, preference: UserPreference, policy: PolicyData, *, trace_id: str = ""
) -> EvaluationResult:
    """Combine the three checks: GRANT iff attributes, purposes and retention all pass.

    The checks are independent and side-effect free, so their order is not
    observable.
    """

    checks: Dict[str, bool] = {
        "attributes": evaluate_attributes(app, preference, policy),
        "purposes": evaluate_purposes(app, preference, policy),
        "retention": evaluate_retention(app, preference),
    }

    failed = [name for name in CHECK_NAMES if not checks[name]]
    if not failed:
        return EvaluationResult(
            verdict=Verdict.GRANT,
            reason="All checks passed",
            trace_id=trace_id,
            metadata={"checks": checks},
        )

    return EvaluationResult(
        verdict=Verdict.DENY,
        reason=f"Failed checks: {', '.join(failed)}",
        trace_id=trace_id,
        metadata={"checks": checks},
    )


@dataclass(frozen=True)
class PrivacyEvaluationEngine:
    """
    Stateless privacy decision point.

    Security invariants
    - Fail closed: any materialization or evaluation failure yields ERROR
    - No partial evaluation on partially materialized input
    - No state retained between calls; inputs are never mutated
    """

    limits: EngineLimits = field(default_factory=EngineLimits)
    strict_taxonomy: bool = False

    def __post_init__(self) -> None:
        if not isinstance(self.limits, EngineLimits):
            raise TypeError("limits must be an EngineLimits instance")

    @staticmethod
    def from_env() -> "PrivacyEvaluationEngine":
        """Create an engine from PRIVPREF_* environment variables."""

        return PrivacyEvaluationEngine(
            limits=EngineLimits.from_env(),
            strict_taxonomy=env_bool("PRIVPREF_VALIDATE_TAXONOMY", False),
        )

    def materialize(
        self,
        app: Union[AppRequest, RawInput],
        preference: Union[UserPreference, RawInput],
        policy: Union[PolicyData, RawInput],
    ) -> Tuple[AppRequest, UserPreference, PolicyData]:
        """Produce domain inputs from objects, mappings or JSON documents.

        Raises PolicyError subclasses on any failure.
        """

        policy_data = (
            policy if isinstance(policy, PolicyData) else materialize_policy(policy, self.limits)
        )
        if self.strict_taxonomy:
            validate_taxonomy(policy_data.attributes)
            validate_taxonomy(policy_data.purposes)

        pref = (
            preference
            if isinstance(preference, UserPreference)
            else materialize_preference(preference, self.limits)
        )
        request = (
            app if isinstance(app, AppRequest) else materialize_app(app, policy_data, self.limits)
        )
        return request, pref, policy_data

    def evaluate(
        self,
        app: AppRequest,
        preference: UserPreference,
        policy: PolicyData,
        *,
        trace_id: str = "",
    ) -> EvaluationResult:
        if not (
            isinstance(app, AppRequest)
            and isinstance(preference, UserPreference)
            and isinstance(policy, PolicyData)
        ):
            return EvaluationResult(
                verdict=Verdict.ERROR,
                reason="Invalid evaluation inputs",
                trace_id=trace_id,
            )

        try:
            result = evaluate(app, preference, policy, trace_id=trace_id)
        except Exception as e:
            log.exception("evaluation_failed", extra={"trace_id": trace_id})
            return EvaluationResult(
                verdict=Verdict.ERROR,
                reason=f"Evaluation exception: {e.__class__.__name__}",
                trace_id=trace_id,
            )

        log.debug(
            "evaluation_verdict",
            extra={
                "trace_id": trace_id,
                "verdict": result.verdict.value,
                "policy_version": policy.version,
            },
        )
        return result

    def evaluate_payloads(
        self,
        app: Union[AppRequest, RawInput],
        preference: Union[UserPreference, RawInput],
        policy: Union[PolicyData, RawInput],
        *,
        trace_id: str = "",
    ) -> EvaluationResult:
        """Entry point: materialize all three inputs, then evaluate.

        Never raises for bad input; returns ERROR instead.
        """

        try:
            request, pref, policy_data = self.materialize(app, preference, policy)
        except (PolicyError, TypeError) as e:
            log.info(
                "evaluation_input_rejected",
                extra={"trace_id": trace_id, "error_type": e.__class__.__name__},
            )
            return EvaluationResult(
                verdict=Verdict.ERROR,
                reason=str(e) or e.__class__.__name__,
                trace_id=trace_id,
                metadata={"error_type": e.__class__.__name__},
            )

        return self.evaluate(request, pref, policy_data, trace_id=trace_id)
