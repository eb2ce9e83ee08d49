from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from pathlib import Path
from typing import List

from privpref.cli.client_cmds import register_client_commands
from privpref.core.policy_engine.limits import EngineLimits
from privpref.core.policy_engine.policy_engine import PrivacyEvaluationEngine
from privpref.core.policy_engine.policy_exceptions import PolicyError
from privpref.core.policy_engine.policy_models import EvaluationResult
from privpref.core.policy_engine.taxonomy import validate_taxonomy
from privpref.core.policy_engine.taxonomy_loader import (
    load_policy_file,
    load_tree_file,
    resolve_taxonomy_path,
)


def _read_bytes(path: str) -> bytes:
    return Path(path).read_bytes()


def _exit_code(result: EvaluationResult) -> int:
    if result.granted:
        return 0
    return 1 if result.success else 2


def cmd_evaluate(args: argparse.Namespace) -> int:
    """Evaluate one app request locally.

    Exit codes: 0 grant, 1 deny, 2 error.
    """

    base = PrivacyEvaluationEngine.from_env()
    engine = PrivacyEvaluationEngine(
        limits=base.limits, strict_taxonomy=base.strict_taxonomy or args.validate
    )

    try:
        policy_path = resolve_taxonomy_path(args.policy, base_dir=args.taxonomy_dir)
        app_raw = _read_bytes(args.app)
        pref_raw = _read_bytes(args.preference)
        policy_raw = _read_bytes(policy_path)
    except (OSError, ValueError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    trace_id = args.trace_id or ""
    result = engine.evaluate_payloads(app_raw, pref_raw, policy_raw, trace_id=trace_id)

    if args.json:
        print(json.dumps(result.to_dict(), indent=2, sort_keys=True))
    else:
        print(result.verdict.value)
        if result.reason:
            print(f"reason: {result.reason}", file=sys.stderr)
    return _exit_code(result)


def cmd_validate_taxonomy(args: argparse.Namespace) -> int:
    """Check both trees of a policy snapshot against the nested-set invariant."""

    try:
        path = resolve_taxonomy_path(args.policy, base_dir=args.taxonomy_dir)
        policy = load_policy_file(path, limits=EngineLimits.from_env())
        validate_taxonomy(policy.attributes)
        validate_taxonomy(policy.purposes)
    except (OSError, ValueError, PolicyError) as e:
        print(f"invalid: {e}", file=sys.stderr)
        return 2

    print(
        f"ok: {len(policy.attributes)} attribute nodes, {len(policy.purposes)} purpose nodes"
        f" (version={policy.version})"
    )
    return 0


def cmd_build_taxonomy(args: argparse.Namespace) -> int:
    """Number a tree-form policy document into nested-set form."""

    try:
        doc = load_tree_file(args.tree)
    except (OSError, ValueError, PolicyError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    text = json.dumps(doc, indent=2)
    if args.out:
        Path(args.out).write_text(text + "\n", encoding="utf-8")
        print(f"wrote {args.out}")
    else:
        print(text)
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the privpref API server.

    Security notes:
    - If PRIVPREF_API_KEYS is set, requests must provide X-PrivPref-API-Key.
    - Bind to 127.0.0.1 by default.

    """

    try:
        import uvicorn
    except ImportError as e:
        print(f"error: uvicorn is required to serve the API: {e}", file=sys.stderr)
        return 2

    from privpref.api.server import ServiceConfig, create_app

    cfg = ServiceConfig.from_env()
    if args.no_cache:
        cfg = replace(cfg, cache_enabled=False)

    try:
        if args.policy:
            path = resolve_taxonomy_path(args.policy, base_dir=args.taxonomy_dir)
            cfg = replace(cfg, policy_file=path)
        app = create_app(config=cfg)
    except (OSError, ValueError, PolicyError) as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    uvicorn.run(app, host=args.host, port=int(args.port), log_level=args.log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the CLI parser."""
    p = argparse.ArgumentParser(prog="privpref", description="Privacy preference evaluation CLI")
    p.add_argument(
        "--taxonomy-dir",
        default=None,
        help="Directory for named taxonomy snapshots (default: shipped taxonomies/)",
    )
    sub = p.add_subparsers(dest="cmd", required=True)

    ev = sub.add_parser("evaluate", help="Evaluate an app request against a user preference")
    ev.add_argument("--app", required=True, help="App request JSON file")
    ev.add_argument("--preference", required=True, help="User preference JSON file")
    ev.add_argument("--policy", default="default", help="Policy JSON file or snapshot name")
    ev.add_argument("--validate", action="store_true", help="Validate taxonomies first")
    ev.add_argument("--trace-id", default=None, help="Trace id to attach to the result")
    ev.add_argument("--json", action="store_true", help="Print the full result as JSON")
    ev.set_defaults(func=cmd_evaluate)

    vt = sub.add_parser("validate-taxonomy", help="Check nested-set intervals of a policy")
    vt.add_argument("policy", help="Policy JSON file or snapshot name")
    vt.set_defaults(func=cmd_validate_taxonomy)

    bt = sub.add_parser("build-taxonomy", help="Assign nested-set intervals to a tree document")
    bt.add_argument("tree", help="Tree-form policy JSON file")
    bt.add_argument("--out", default=None, help="Write result here instead of stdout")
    bt.set_defaults(func=cmd_build_taxonomy)

    sv = sub.add_parser("serve", help="Run the privpref FastAPI server")
    sv.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    sv.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    sv.add_argument("--policy", default=None, help="Default policy file or snapshot name")
    sv.add_argument("--no-cache", action="store_true", help="Disable the decision cache")
    sv.add_argument("--log-level", default="info", help="Uvicorn log level")
    sv.set_defaults(func=cmd_serve)

    register_client_commands(sub)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
