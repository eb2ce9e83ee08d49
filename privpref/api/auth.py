from __future__ import annotations

import hmac
import os
from dataclasses import dataclass
from typing import Dict, FrozenSet, Optional

API_KEY_HEADER = "X-PrivPref-API-Key"

CAP_EVALUATE = "policy:evaluate"
CAP_CACHE_ADMIN = "cache:admin"


@dataclass(frozen=True, slots=True)
class Caller:
    """Authenticated caller of the evaluation API.

    Security notes:
    - Capabilities come from the server-side key mapping only.

    """

    caller_id: str
    capabilities: FrozenSet[str]

    def can(self, capability: str) -> bool:
        return capability in self.capabilities


ANONYMOUS = Caller(caller_id="anonymous", capabilities=frozenset({CAP_EVALUATE, CAP_CACHE_ADMIN}))


def parse_api_keys(raw: str) -> Dict[str, Caller]:
    """Parse PRIVPREF_API_KEYS into an API key -> Caller mapping.

    Format (semicolon-separated entries):
      <APIKEY>:<CALLER_ID>:<cap1,cap2>

    Example:
      PRIVPREF_API_KEYS="k1:fog-node-1:policy:evaluate;k2:ops:policy:evaluate,cache:admin"

    Entries that do not split into three parts, or lack a key or caller id,
    are skipped.
    """

    out: Dict[str, Caller] = {}
    for entry in (raw or "").split(";"):
        entry = entry.strip()
        if not entry:
            continue
        parts = entry.split(":", 2)
        if len(parts) != 3:
            continue
        key, caller_id, caps_raw = (p.strip() for p in parts)
        if not key or not caller_id:
            continue
        caps = frozenset(c.strip() for c in caps_raw.split(",") if c.strip())
        out[key] = Caller(caller_id=caller_id, capabilities=caps)
    return out


def load_api_keys() -> Dict[str, Caller]:
    return parse_api_keys(os.environ.get("PRIVPREF_API_KEYS", ""))


def requires_auth(mapping: Dict[str, Caller]) -> bool:
    """Auth is on if PRIVPREF_REQUIRE_AUTH is truthy or any key is configured."""

    if os.environ.get("PRIVPREF_REQUIRE_AUTH", "").strip() in {"1", "true", "TRUE", "yes", "YES"}:
        return True
    return bool(mapping)


def authenticate(api_key: Optional[str], mapping: Dict[str, Caller]) -> Optional[Caller]:
    """Look up an API key with constant-time comparison against every entry."""

    if not api_key:
        return None

    presented = api_key.encode("utf-8")
    found: Optional[Caller] = None
    for key, caller in mapping.items():
        if hmac.compare_digest(key.encode("utf-8"), presented):
            found = caller
    return found
