from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional


class Verdict(str, Enum):
    """
    Enumerated evaluation outcome.

    Using str Enum keeps the wire form ("grant", "deny", "error") stable.
    """

    GRANT = "grant"
    DENY = "deny"
    ERROR = "error"

    @property
    def code(self) -> int:
        return _VERDICT_CODES[self]


_VERDICT_CODES = {Verdict.GRANT: 1, Verdict.DENY: 0, Verdict.ERROR: -1}


@dataclass(frozen=True)
class EvaluationResult:
    """
    Immutable outcome of one privacy evaluation.

    Security invariants
    - Frozen dataclass prevents post-hoc tampering
    - verdict is a Verdict enum (not free-form text)
    - success reports whether the call completed structurally; it is False only
      for ERROR and says nothing about grant vs deny
    - to_dict returns JSON-safe primitives
    """

    verdict: Verdict
    reason: Optional[str] = None
    trace_id: str = ""
    metadata: Optional[Dict[str, Any]] = None

    @property
    def success(self) -> bool:
        return self.verdict is not Verdict.ERROR

    @property
    def granted(self) -> bool:
        return self.verdict is Verdict.GRANT

    def to_dict(self) -> Dict[str, Any]:
        return {
            "result": self.verdict.value,
            "code": self.verdict.code,
            "success": self.success,
            "reason": self.reason,
            "trace_id": self.trace_id,
            "metadata": dict(self.metadata) if self.metadata else {},
        }
