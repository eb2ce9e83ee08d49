from __future__ import annotations

import json
import ssl
from dataclasses import dataclass
from typing import Any, Mapping, Optional
from urllib.error import HTTPError, URLError
from urllib.parse import urljoin
from urllib.request import Request, urlopen

API_KEY_HEADER = "X-PrivPref-API-Key"


@dataclass(frozen=True, slots=True)
class HttpResponse:
    """HTTP response wrapper. `body_bytes` is untrusted."""

    status: int
    headers: Mapping[str, str]
    body_bytes: bytes

    def json(self) -> Any:
        return json.loads(self.body_bytes.decode("utf-8", errors="strict"))


class PrivPrefHttpClient:
    """Minimal stdlib-only HTTP client for the privpref API.

    Security notes:
    - Refuses to send request bodies above max_body_bytes.
    - Does NOT disable TLS verification.
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        max_body_bytes: int = 256 * 1024,
        timeout: float = 10.0,
    ):
        self.base_url = base_url.rstrip("/") + "/"
        self.api_key = api_key
        self.max_body_bytes = int(max_body_bytes)
        self.timeout = float(timeout)

    def _request(self, method: str, path: str, body: Optional[bytes] = None) -> HttpResponse:
        url = urljoin(self.base_url, path.lstrip("/"))
        req = Request(url=url, data=body, method=method)
        if body is not None:
            req.add_header("Content-Type", "application/json")
            req.add_header("Content-Length", str(len(body)))
        if self.api_key:
            req.add_header(API_KEY_HEADER, self.api_key)
        return _do_request(req, self.timeout)

    def get(self, path: str) -> HttpResponse:
        return self._request("GET", path)

    def delete(self, path: str) -> HttpResponse:
        return self._request("DELETE", path)

    def post_json(self, path: str, payload: Any) -> HttpResponse:
        body = json.dumps(payload, separators=(",", ":")).encode("utf-8")
        if len(body) > self.max_body_bytes:
            raise ValueError(
                f"request body too large for client cap: {len(body)} > {self.max_body_bytes}"
            )
        return self._request("POST", path, body)

    def evaluate(
        self,
        app: Mapping[str, Any],
        preference: Mapping[str, Any],
        policy: Optional[Mapping[str, Any]] = None,
    ) -> HttpResponse:
        """POST /evaluate. policy may be omitted when the server has a default."""

        payload: dict = {"app": dict(app), "preference": dict(preference)}
        if policy is not None:
            payload["policy"] = dict(policy)
        return self.post_json("/evaluate", payload)


def _do_request(req: Request, timeout: float) -> HttpResponse:
    """Execute a request; HTTP error statuses are returned, not raised."""

    try:
        ctx = ssl.create_default_context()
        with urlopen(req, context=ctx, timeout=timeout) as resp:
            body = resp.read()
            headers = {k: v for k, v in resp.headers.items()}
            return HttpResponse(status=int(resp.status), headers=headers, body_bytes=body)
    except HTTPError as e:
        body = e.read() if hasattr(e, "read") else b""
        headers = dict(getattr(e, "headers", {}) or {})
        return HttpResponse(
            status=int(getattr(e, "code", 0) or 0), headers=headers, body_bytes=body
        )
    except URLError as e:
        raise RuntimeError(f"network error: {e}") from e
