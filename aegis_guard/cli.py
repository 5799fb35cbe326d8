"""
aegis-guard CLI
~~~~~~~~~~~~~~~

Command-line interface for aegis-guard: configuration checks and
offline risk assessment / rollback synthesis.
"""

from __future__ import annotations

import argparse
import json
import sys
from typing import Any

from aegis_guard.config.defaults import DEFAULT_CONFIG
from aegis_guard.config.loader import load_config, load_config_from_dict
from aegis_guard.config.schema import AegisConfig
from aegis_guard.core.levels import ChangeType
from aegis_guard.core.models import ChangePreview
from aegis_guard.exceptions import ConfigError
from aegis_guard.rollback.inversion import invert_command, invert_params
from aegis_guard.safemode.risk import assess_risk, should_auto_approve


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aegis-guard",
        description="aegis-guard: safety-gated execution pipeline",
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Show version and exit",
    )
    subparsers = parser.add_subparsers(dest="command")

    # version command
    subparsers.add_parser("version", help="Show version")

    # inspect command
    inspect_parser = subparsers.add_parser(
        "inspect", help="Show the effective configuration"
    )
    inspect_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to aegis_config.yaml",
    )

    # check-config command
    check_parser = subparsers.add_parser(
        "check-config", help="Validate a configuration file"
    )
    check_parser.add_argument("path", type=str, help="Path to aegis_config.yaml")

    # assess command
    assess_parser = subparsers.add_parser(
        "assess", help="Assess the risk of a command offline"
    )
    assess_parser.add_argument(
        "--command",
        type=str,
        required=True,
        help="Command name (e.g. delete_actor)",
    )
    assess_parser.add_argument(
        "--changes",
        type=str,
        default="[]",
        help='JSON list of changes (e.g. \'[{"type": "delete", "target": "/A"}]\')',
    )
    assess_parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to aegis_config.yaml (for the auto-approve settings)",
    )

    # invert command
    invert_parser = subparsers.add_parser(
        "invert", help="Show the synthesized rollback for a command"
    )
    invert_parser.add_argument("--command", type=str, required=True)
    invert_parser.add_argument(
        "--target",
        type=str,
        required=True,
        help="Identifier of the changed entity",
    )
    invert_parser.add_argument(
        "--previous",
        type=str,
        default="{}",
        help="JSON object with the entity's previous state",
    )

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main CLI entry point. Returns the process exit code."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.version or args.command == "version":
        from aegis_guard import __version__

        print(f"aegis-guard {__version__}")
        return 0

    handlers = {
        "inspect": _run_inspect,
        "check-config": _run_check_config,
        "assess": _run_assess,
        "invert": _run_invert,
    }
    handler = handlers.get(args.command)
    if handler is None:
        parser.print_help()
        return 1

    try:
        return handler(args)
    except ConfigError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1


def _load(config_path: str | None) -> AegisConfig:
    if config_path:
        return load_config(config_path)
    return load_config_from_dict(DEFAULT_CONFIG)


def _parse_json(raw: str, flag: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError as exc:
        print(f"Error: Invalid JSON in {flag}: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


def _run_inspect(args: argparse.Namespace) -> int:
    """Print the effective configuration as JSON."""
    config = _load(args.config)
    print(json.dumps(config.model_dump(), indent=2))
    return 0


def _run_check_config(args: argparse.Namespace) -> int:
    config = load_config(args.path)
    print(
        f"OK: {args.path} "
        f"(timeout={config.executor.timeout_seconds:g}s, "
        f"safe_mode={'on' if config.safe_mode.enabled else 'off'}, "
        f"auto_approve={config.safe_mode.auto_approve_level})"
    )
    return 0


def _run_assess(args: argparse.Namespace) -> int:
    """Print the risk assessment and auto-approval decision for a command."""
    config = _load(args.config)
    raw_changes = _parse_json(args.changes, "--changes")
    if not isinstance(raw_changes, list):
        print("Error: --changes must be a JSON list", file=sys.stderr)
        return 1

    try:
        changes = [
            ChangePreview(
                type=ChangeType(item["type"]),
                target=str(item.get("target", "")),
                description=str(item.get("description", "")),
                affected_dependencies=list(item.get("affected_dependencies", [])),
            )
            for item in raw_changes
        ]
    except (KeyError, TypeError, ValueError) as exc:
        print(f"Error: Invalid change entry: {exc}", file=sys.stderr)
        return 1

    assessment = assess_risk(args.command, changes)
    auto = should_auto_approve(
        args.command,
        assessment,
        config.safe_mode.auto_approve_threshold,
        config.safe_mode.require_explicit_approval,
    )

    print(f"Command:       {args.command}")
    print(f"Risk level:    {assessment.level.value}")
    print(f"Impact:        {assessment.estimated_impact}")
    print(f"Reversible:    {assessment.reversible}")
    print(f"Auto-approve:  {auto}")
    if assessment.factors:
        print("Factors:")
        for factor in assessment.factors:
            print(f"  - {factor}")
    return 0


def _run_invert(args: argparse.Namespace) -> int:
    previous = _parse_json(args.previous, "--previous")
    if not isinstance(previous, dict):
        print("Error: --previous must be a JSON object", file=sys.stderr)
        return 1

    print(
        json.dumps(
            {
                "command": invert_command(args.command),
                "params": invert_params(args.command, args.target, previous),
            },
            indent=2,
        )
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
