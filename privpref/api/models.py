from __future__ import annotations

from pydantic import BaseModel, Field
from typing import Any, Dict, Optional


class HealthOut(BaseModel):
    ok: bool = True
    auth_required: bool
    cache_enabled: bool
    default_policy_version: Optional[str] = None


class EvaluateIn(BaseModel):
    """Evaluation request. Each part is validated by the engine, not here."""

    app: Dict[str, Any]
    preference: Dict[str, Any]
    policy: Optional[Dict[str, Any]] = None


class EvaluateOut(BaseModel):
    """Evaluation outcome.

    code: 1 grant, 0 deny, -1 error. success is False only for error.
    """

    result: str
    code: int
    success: bool
    reason: Optional[str] = None
    trace_id: str = ""
    checks: Dict[str, bool] = Field(default_factory=dict)
    cache_hit: bool = False
    latency_ms: float = 0.0


class CacheStatsOut(BaseModel):
    enabled: bool
    total_entries: int = 0
    grant_count: int = 0
    deny_count: int = 0
    hits: int = 0
    misses: int = 0


class CacheClearOut(BaseModel):
    deleted_count: int
