from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional

from fastapi import Depends, FastAPI, Header, HTTPException
from fastapi.responses import JSONResponse
from pydantic import ValidationError
from starlette.requests import Request

from privpref.api.auth import (
    ANONYMOUS,
    API_KEY_HEADER,
    CAP_CACHE_ADMIN,
    CAP_EVALUATE,
    Caller,
    authenticate,
    load_api_keys,
    requires_auth,
)
from privpref.api.middleware import RequestTraceMiddleware
from privpref.api.models import (
    CacheClearOut,
    CacheStatsOut,
    EvaluateIn,
    EvaluateOut,
    HealthOut,
)
from privpref.core.policy_engine.limits import env_bool, env_int
from privpref.core.policy_engine.policy_engine import PrivacyEvaluationEngine
from privpref.core.policy_engine.policy_exceptions import PolicyError
from privpref.core.policy_engine.policy_models import EvaluationResult, Verdict
from privpref.core.policy_engine.request_models import PolicyData
from privpref.core.policy_engine.taxonomy import validate_taxonomy
from privpref.core.policy_engine.taxonomy_loader import load_policy_file
from privpref.core.runtime.decision_cache import DecisionCache
from privpref.core.runtime.hashing import decision_key

log = logging.getLogger("privpref.api")


@dataclass(frozen=True, slots=True)
class ServiceConfig:
    """Configuration for the API service.

    - policy_file: optional taxonomy snapshot used when a request omits "policy"
    - cache_enabled: reuse verdicts for identical (app, preference, policy version)

    """

    policy_file: Optional[str] = None
    cache_enabled: bool = True
    cache_max_entries: int = 10_000

    @staticmethod
    def from_env() -> "ServiceConfig":
        return ServiceConfig(
            policy_file=(os.environ.get("PRIVPREF_POLICY_FILE") or None),
            cache_enabled=env_bool("PRIVPREF_CACHE_ENABLED", True),
            cache_max_entries=env_int("PRIVPREF_CACHE_MAX_ENTRIES", 10_000),
        )


def _result_out(
    result: EvaluationResult, *, cache_hit: bool = False, started: Optional[float] = None
) -> EvaluateOut:
    meta = result.metadata or {}
    latency = (time.perf_counter() - started) * 1000.0 if started is not None else 0.0
    return EvaluateOut(
        result=result.verdict.value,
        code=result.verdict.code,
        success=result.success,
        reason=result.reason,
        trace_id=result.trace_id,
        checks=dict(meta.get("checks") or {}),
        cache_hit=cache_hit,
        latency_ms=round(latency, 3),
    )


def _error_response(status_code: int, reason: str, trace_id: str) -> JSONResponse:
    result = EvaluationResult(verdict=Verdict.ERROR, reason=reason, trace_id=trace_id)
    return JSONResponse(status_code=status_code, content=_result_out(result).model_dump())


def create_app(
    *,
    config: Optional[ServiceConfig] = None,
    engine: Optional[PrivacyEvaluationEngine] = None,
) -> FastAPI:
    """Create the FastAPI app."""

    cfg = config or ServiceConfig.from_env()
    eng = engine or PrivacyEvaluationEngine.from_env()
    mapping = load_api_keys()
    must_auth = requires_auth(mapping)

    log.setLevel(os.environ.get("PRIVPREF_LOG_LEVEL", "INFO").upper())

    # Fail fast at startup: a broken default taxonomy must not serve requests.
    default_policy: Optional[PolicyData] = None
    if cfg.policy_file:
        default_policy = load_policy_file(cfg.policy_file, limits=eng.limits)
        if eng.strict_taxonomy:
            validate_taxonomy(default_policy.attributes)
            validate_taxonomy(default_policy.purposes)

    app = FastAPI(title="privpref API", version="0.1")

    app.state.cfg = cfg
    app.state.engine = eng
    app.state.must_auth = must_auth
    app.state.default_policy = default_policy
    app.state.cache = (
        DecisionCache(max_entries=cfg.cache_max_entries) if cfg.cache_enabled else None
    )

    app.add_middleware(RequestTraceMiddleware)

    def get_caller(
        request: Request,
        x_privpref_api_key: Optional[str] = Header(default=None, alias=API_KEY_HEADER),
    ) -> Caller:
        """Authenticate request; fail closed (401) if auth is on and the key is bad."""

        if not must_auth:
            caller = ANONYMOUS
        else:
            caller = authenticate(x_privpref_api_key, mapping)
            if caller is None:
                raise HTTPException(status_code=401, detail="unauthorized")

        request.state.caller_id = caller.caller_id
        return caller

    def _require_cap(caller: Caller, cap: str) -> None:
        if not caller.can(cap):
            raise HTTPException(status_code=403, detail="forbidden")

    def _require_cache() -> DecisionCache:
        cache = getattr(app.state, "cache", None)
        if cache is None:
            raise HTTPException(status_code=404, detail="cache_disabled")
        return cache

    @app.get("/health", response_model=HealthOut)
    def health() -> HealthOut:
        return HealthOut(
            auth_required=must_auth,
            cache_enabled=app.state.cache is not None,
            default_policy_version=default_policy.version if default_policy else None,
        )

    @app.post("/evaluate", response_model=EvaluateOut)
    async def evaluate_endpoint(request: Request, caller: Caller = Depends(get_caller)):
        """Evaluate one app request against one user preference.

        Requires capability: policy:evaluate

        Body: {"app": {...}, "preference": {...}, "policy": {...}?}

        Malformed input returns 400 with result "error" (code -1); no partial
        evaluation happens.
        """

        _require_cap(caller, CAP_EVALUATE)
        started = time.perf_counter()
        trace_id = str(getattr(request.state, "request_id", "") or "")

        raw = await request.body()
        if len(raw) > 3 * eng.limits.max_payload_bytes:
            return _error_response(400, "request body too large", trace_id)

        try:
            body: Dict[str, Any] = json.loads(raw.decode("utf-8"))
            envelope = EvaluateIn.model_validate(body)
        except (UnicodeDecodeError, json.JSONDecodeError, RecursionError, ValidationError) as e:
            return _error_response(400, f"invalid request body ({e.__class__.__name__})", trace_id)

        policy_in: Any = envelope.policy if envelope.policy is not None else default_policy
        if policy_in is None:
            return _error_response(400, "policy missing and no default configured", trace_id)

        try:
            app_req, pref, policy = eng.materialize(envelope.app, envelope.preference, policy_in)
        except (PolicyError, TypeError) as e:
            log.info(
                "evaluate_rejected",
                extra={"request_id": trace_id, "error_type": e.__class__.__name__},
            )
            return _error_response(400, str(e) or e.__class__.__name__, trace_id)

        cache: Optional[DecisionCache] = app.state.cache
        key = decision_key(app_req, pref, policy) if cache is not None else None

        if cache is not None and key is not None:
            cached = cache.get(key)
            if cached is not None:
                hit = replace(cached, trace_id=trace_id)
                return _result_out(hit, cache_hit=True, started=started)

        result = eng.evaluate(app_req, pref, policy, trace_id=trace_id)
        if not result.success:
            return JSONResponse(
                status_code=500, content=_result_out(result, started=started).model_dump()
            )

        if cache is not None and key is not None:
            cache.put(key, result, pref.time_of_retention)

        return _result_out(result, started=started)

    @app.get("/cache/stats", response_model=CacheStatsOut)
    def cache_stats(caller: Caller = Depends(get_caller)) -> CacheStatsOut:
        """Requires capability: cache:admin"""

        _require_cap(caller, CAP_CACHE_ADMIN)
        cache = app.state.cache
        if cache is None:
            return CacheStatsOut(enabled=False)
        return CacheStatsOut(enabled=True, **cache.stats().to_dict())

    @app.delete("/cache", response_model=CacheClearOut)
    def clear_cache(caller: Caller = Depends(get_caller)) -> CacheClearOut:
        """Requires capability: cache:admin"""

        _require_cap(caller, CAP_CACHE_ADMIN)
        removed = _require_cache().clear()
        log.info("cache_cleared", extra={"deleted_count": removed})
        return CacheClearOut(deleted_count=removed)

    return app
