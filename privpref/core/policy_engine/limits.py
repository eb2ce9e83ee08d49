from __future__ import annotations

import os
from dataclasses import dataclass

DEFAULT_MAX_NODES = 256
DEFAULT_MAX_PAYLOAD_BYTES = 64 * 1024


def env_int(name: str, default: int) -> int:
    """Read an integer environment variable, falling back to default."""

    raw = os.environ.get(name, "").strip()
    if not raw:
        return int(default)
    try:
        return int(raw)
    except ValueError:
        return int(default)


def env_bool(name: str, default: bool) -> bool:
    raw = os.environ.get(name, "").strip()
    if not raw:
        return default
    return raw in {"1", "true", "TRUE", "yes", "YES"}


@dataclass(frozen=True, slots=True)
class EngineLimits:
    """Size ceilings applied while materializing evaluation inputs.

    They keep the existential match search, worst case
    app nodes x reference ids, within a predictable cost envelope.

    - max_nodes: per taxonomy tree, per request axis and per preference list
    - max_payload_bytes: per serialized input document
    """

    max_nodes: int = DEFAULT_MAX_NODES
    max_payload_bytes: int = DEFAULT_MAX_PAYLOAD_BYTES

    def __post_init__(self) -> None:
        if self.max_nodes < 1:
            raise ValueError("max_nodes must be positive")
        if self.max_payload_bytes < 1:
            raise ValueError("max_payload_bytes must be positive")

    @staticmethod
    def from_env() -> "EngineLimits":
        """Create limits from environment variables.

        - PRIVPREF_MAX_NODES (default 256)
        - PRIVPREF_MAX_PAYLOAD_BYTES (default 65536)
        """

        return EngineLimits(
            max_nodes=max(1, env_int("PRIVPREF_MAX_NODES", DEFAULT_MAX_NODES)),
            max_payload_bytes=max(
                1, env_int("PRIVPREF_MAX_PAYLOAD_BYTES", DEFAULT_MAX_PAYLOAD_BYTES)
            ),
        )
