from __future__ import annotations

import argparse
import json
import sys

from privpref.client.http import HttpResponse, PrivPrefHttpClient


def _print_json(obj: object) -> None:
    print(json.dumps(obj, indent=2, sort_keys=True, default=str))


def _read_json(path: str) -> dict:
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _client(args: argparse.Namespace) -> PrivPrefHttpClient:
    return PrivPrefHttpClient(args.url, api_key=args.api_key, timeout=args.timeout)


def _emit(r: HttpResponse) -> int:
    """Print a JSON response. Returns 2 on HTTP errors."""

    if r.status >= 400:
        print(r.body_bytes.decode("utf-8", errors="replace"), file=sys.stderr)
        return 2
    _print_json(r.json())
    return 0


def cmd_client_health(args: argparse.Namespace) -> int:
    """Call GET /health."""
    return _emit(_client(args).get("/health"))


def cmd_client_evaluate(args: argparse.Namespace) -> int:
    """Call POST /evaluate.

    Exit codes follow the local evaluate command: 0 grant, 1 deny, 2 error.
    """

    policy = _read_json(args.policy) if args.policy else None
    r = _client(args).evaluate(_read_json(args.app), _read_json(args.preference), policy)

    try:
        data = r.json()
    except ValueError:
        print(r.body_bytes.decode("utf-8", errors="replace"), file=sys.stderr)
        return 2

    _print_json(data)
    result = data.get("result") if isinstance(data, dict) else None
    if result == "grant":
        return 0
    if result == "deny":
        return 1
    return 2


def cmd_client_cache_stats(args: argparse.Namespace) -> int:
    """Call GET /cache/stats."""
    return _emit(_client(args).get("/cache/stats"))


def cmd_client_clear_cache(args: argparse.Namespace) -> int:
    """Call DELETE /cache."""
    return _emit(_client(args).delete("/cache"))


def register_client_commands(sub: argparse._SubParsersAction) -> None:
    """Register the `client` command group."""

    client = sub.add_parser("client", help="privpref API client (talk to a running server)")
    client.add_argument("--url", default="http://127.0.0.1:8080", help="Base API URL")
    client.add_argument("--api-key", default=None, help="API key (X-PrivPref-API-Key)")
    client.add_argument("--timeout", type=float, default=10.0, help="Request timeout (seconds)")
    csub = client.add_subparsers(dest="client_cmd", required=True)

    h = csub.add_parser("health", help="Check server health")
    h.set_defaults(func=cmd_client_health)

    ev = csub.add_parser("evaluate", help="Evaluate an app request remotely")
    ev.add_argument("--app", required=True, help="App request JSON file")
    ev.add_argument("--preference", required=True, help="User preference JSON file")
    ev.add_argument(
        "--policy", default=None, help="Policy JSON file (omit to use the server default)"
    )
    ev.set_defaults(func=cmd_client_evaluate)

    cs = csub.add_parser("cache-stats", help="Show decision cache statistics")
    cs.set_defaults(func=cmd_client_cache_stats)

    cc = csub.add_parser("clear-cache", help="Clear the decision cache")
    cc.set_defaults(func=cmd_client_clear_cache)
