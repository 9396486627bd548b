from __future__ import annotations

import argparse
import json
import sys
from dataclasses import replace
from typing import Any, List

from sanorm.config import DEFAULT_CONFIG, ERROR_FORMATS, OUTPUT_FORMATS, ModuleConfig, load_config
from sanorm.core.normalization.engine import NormalizationEngine
from sanorm.core.sanitization.engine import SanitizationEngine
from sanorm.core.sanitization.exceptions import ConfigError, SanitizationViolation


def _json_default(o):
    # Lazy import keeps CLI startup light
    from sanorm.utils.json_safe import to_jsonable

    return to_jsonable(o)


def _print_json(value: Any) -> None:
    print(json.dumps(value, indent=2, default=_json_default))


def _read_payload(path: str) -> Any:
    """Read a JSON document from a file, or stdin for "-"."""

    if path == "-":
        return json.load(sys.stdin)
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)


def _base_config(args: argparse.Namespace) -> ModuleConfig:
    if getattr(args, "config", None):
        return load_config(args.config)
    return DEFAULT_CONFIG


def _split_rules(raw: str | None) -> List[str] | None:
    if raw is None:
        return None
    return [r.strip() for r in raw.split(",") if r.strip()]


def cmd_rules(args: argparse.Namespace) -> int:
    """List registered rules."""
    engine = SanitizationEngine(_base_config(args).sanitization)
    for rule in engine.get_rules():
        kinds = []
        if rule.validate is not None:
            kinds.append("validate")
        if rule.transform is not None:
            kinds.append("transform")
        print(f"{rule.name:<18} [{','.join(kinds)}]  {rule.description}")
    return 0


def cmd_sanitize(args: argparse.Namespace) -> int:
    """Sanitize a JSON document and print the result."""

    cfg = _base_config(args)
    san = cfg.sanitization
    if args.strict:
        san = replace(san, strict_mode=True)
    if args.reject:
        san = replace(san, strict_mode=True, reject_on_violation=True)

    engine = SanitizationEngine(san)
    rules = _split_rules(args.rules)
    if args.validate_rules:
        try:
            engine.registry.validate_names(rules if rules is not None else san.rules)
        except ConfigError as e:
            print(f"error: {e}", file=sys.stderr)
            return 1

    try:
        result = engine.sanitize(_read_payload(args.input), rules)
    except SanitizationViolation as e:
        print(f"rejected: {e}", file=sys.stderr)
        for v in e.violations:
            print(f"  {v.describe()}  rule={v.rule} severity={v.severity.value}", file=sys.stderr)
        return 1

    _print_json(result.to_dict())
    return 0


def cmd_normalize(args: argparse.Namespace) -> int:
    """Wrap a JSON document in a success (or, with --error, error) envelope."""

    cfg = _base_config(args)
    norm = cfg.normalization
    if args.format:
        norm = replace(norm, format=args.format)
    if args.error_format:
        norm = replace(norm, error_format=args.error_format)

    engine = NormalizationEngine(norm)
    ctx = engine.create_request_context(args.request_id)
    payload = _read_payload(args.input)

    if args.error:
        _print_json(engine.normalize_error(payload, ctx, args.code))
    else:
        _print_json(engine.normalize_result(payload, ctx))
    return 0


def cmd_check_config(args: argparse.Namespace) -> int:
    """Load a JSON config and validate its rule names."""

    try:
        cfg = load_config(args.path)
        SanitizationEngine(cfg.sanitization).validate_config()
    except (ConfigError, OSError) as e:
        print(f"invalid: {e}", file=sys.stderr)
        return 1

    print(f"ok: rules={','.join(cfg.sanitization.rules)} format={cfg.normalization.format}")
    return 0


def cmd_serve(args: argparse.Namespace) -> int:
    """Run the demo API server.

    Security notes:
    - Bind to 127.0.0.1 by default (safer than 0.0.0.0).

    """

    try:
        import uvicorn
    except Exception as e:
        print(f"error: uvicorn is required to serve the API: {e}", file=sys.stderr)
        return 2

    try:
        from sanorm.api.server import create_app
        from sanorm.config import config_from_env
    except Exception as e:
        print(f"error: API server dependencies missing: {e}", file=sys.stderr)
        return 2

    try:
        cfg = load_config(args.config) if args.config else config_from_env()
        app = create_app(cfg)
    except ConfigError as e:
        print(f"error: {e}", file=sys.stderr)
        return 1

    uvicorn.run(app, host=args.host, port=int(args.port), log_level=args.log_level)
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="sanorm", description="Request sanitization and response normalization")
    sub = p.add_subparsers(dest="cmd", required=True)

    rp = sub.add_parser("rules", help="List registered sanitization rules")
    rp.add_argument("--config", default=None, help="Optional JSON config file")
    rp.set_defaults(func=cmd_rules)

    sp = sub.add_parser("sanitize", help="Sanitize a JSON document")
    sp.add_argument("input", nargs="?", default="-", help="JSON file (default: stdin)")
    sp.add_argument("--rules", default=None, help="Comma-separated rule names (default: configured rules)")
    sp.add_argument("--config", default=None, help="Optional JSON config file")
    sp.add_argument("--strict", action="store_true", help="Enable strict mode")
    sp.add_argument("--reject", action="store_true", help="Reject input on any violation (implies --strict)")
    sp.add_argument(
        "--validate-rules",
        action="store_true",
        help="Fail on unknown rule names instead of ignoring them",
    )
    sp.set_defaults(func=cmd_sanitize)

    np = sub.add_parser("normalize", help="Wrap a JSON document in a response envelope")
    np.add_argument("input", nargs="?", default="-", help="JSON file (default: stdin)")
    np.add_argument("--config", default=None, help="Optional JSON config file")
    np.add_argument("--format", choices=OUTPUT_FORMATS, default=None, help="Success envelope format")
    np.add_argument("--error-format", choices=ERROR_FORMATS, default=None, help="Error envelope format")
    np.add_argument("--error", action="store_true", help="Treat the document as an error")
    np.add_argument("--code", default=None, help="Error code (with --error)")
    np.add_argument("--request-id", default=None, help="Request id (default: random uuid4)")
    np.set_defaults(func=cmd_normalize)

    cp = sub.add_parser("check-config", help="Validate a JSON configuration file")
    cp.add_argument("path", help="Path to JSON config")
    cp.set_defaults(func=cmd_check_config)

    sv = sub.add_parser("serve", help="Run the demo FastAPI server")
    sv.add_argument("--host", default="127.0.0.1", help="Bind host (default: 127.0.0.1)")
    sv.add_argument("--port", type=int, default=8080, help="Bind port (default: 8080)")
    sv.add_argument("--config", default=None, help="Optional JSON config (default: SANORM_* env vars)")
    sv.add_argument("--log-level", default="info", help="Uvicorn log level")
    sv.set_defaults(func=cmd_serve)

    return p


def main(argv: List[str] | None = None) -> int:
    """CLI entry."""
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
