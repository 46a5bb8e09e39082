# main.py
# SPDX-License-Identifier: MIT

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from ..core.categories import LicenseCategory
from ..core.compatibility import from_policy, verify_compatibility
from ..core.config import SpdxflowConfig, load_config_from_path
from ..core.log import get_logger
from ..core.parser import parse_expression
from ..core.policy import LicensePolicyInterpreter

log = get_logger(__name__)

_CATEGORY_CHOICES = [c.value for c in LicenseCategory]


def _build_parser() -> argparse.ArgumentParser:
    """Build the top-level spdxflow CLI argument parser.

    Returns:
        argparse.ArgumentParser: Parser with the ``eval``, ``verify`` and
        ``policy`` subcommands.
    """
    parser = argparse.ArgumentParser(prog="spdxflow", description="SPDX license policy tools")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Logging level (e.g., DEBUG, INFO, WARNING). Overrides the config file.",
    )
    parser.add_argument("-c", "--config", help="Path to config file (TOML or JSON).")
    subparsers = parser.add_subparsers(dest="command", required=True)

    eval_p = subparsers.add_parser("eval", help="Print the policy category of SPDX expressions.")
    eval_p.add_argument("expressions", nargs="+", help="SPDX license expressions.")
    eval_p.add_argument("--json", action="store_true", help="Print results as JSON.")

    verify_p = subparsers.add_parser("verify", help="Check dependency licenses for compatibility.")
    verify_p.add_argument(
        "dependencies",
        type=Path,
        help="JSON file mapping component name to SPDX expression (or null).",
    )
    verify_p.add_argument(
        "--allow",
        nargs="+",
        choices=_CATEGORY_CHOICES,
        default=["A"],
        help="Categories to allow (default: A).",
    )
    verify_p.add_argument(
        "--reject",
        nargs="+",
        choices=_CATEGORY_CHOICES,
        default=["X"],
        help="Categories to reject (default: X).",
    )
    verify_p.add_argument("--no-fail", action="store_true", help="Exit 0 even when licenses are not allowed.")
    verify_p.add_argument("--output", "-o", type=Path, help="Also write the report to this file.")
    verify_p.add_argument("--json", action="store_true", help="Print the report as JSON.")

    subparsers.add_parser("policy", help="Print the effective license policy as JSON.")

    return parser


def _load_config(path: Optional[str]) -> SpdxflowConfig:
    if not path:
        return SpdxflowConfig()
    return load_config_from_path(path)


def _configure_logging(cfg: SpdxflowConfig, args: argparse.Namespace) -> None:
    if args.log_level:
        cfg.logging.level = args.log_level
    cfg.logging.apply()


def _read_dependencies(path: Path) -> Dict[str, Any]:
    data = json.loads(path.read_text("utf-8"))
    if not isinstance(data, dict):
        raise ValueError(f"{path} must contain a JSON object mapping component to license.")
    for component, value in data.items():
        if value is not None and not isinstance(value, str):
            raise ValueError(f"License of {component} must be a string or null; got {type(value).__name__}.")
    return data


def _cmd_eval(cfg: SpdxflowConfig, args: argparse.Namespace) -> int:
    interpreter = LicensePolicyInterpreter(cfg.policy.build_policy())
    results = []
    for text in args.expressions:
        expr = parse_expression(text)
        results.append({"expression": str(expr), "category": interpreter.evaluate(expr).value})
    if args.json:
        print(json.dumps(results, indent=2))
    else:
        for item in results:
            print(f"{item['expression']}: {item['category']}")
    return 0


def _cmd_verify(cfg: SpdxflowConfig, args: argparse.Namespace) -> int:
    dependencies = _read_dependencies(args.dependencies)
    interpreter = from_policy(cfg.policy.build_policy(), allow=args.allow, reject=args.reject)
    report = verify_compatibility(dependencies, interpreter)
    text = json.dumps(report.to_dict(), indent=2) if args.json else report.render()
    print(text)
    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(text + "\n", encoding="utf-8")
    if report.ok:
        return 0
    if args.no_fail:
        log.warning("Incompatible or unknown licenses found:\n%s", report.error_message())
        return 0
    return 1


def _dispatch(args: argparse.Namespace) -> int:
    """Dispatch a parsed CLI command to the appropriate handler.

    Args:
        args (argparse.Namespace): Parsed arguments from the top-level
            argument parser.

    Returns:
        int: Process exit code, where 0 indicates success and non-zero
        values indicate failure.
    """
    cfg = _load_config(args.config)
    _configure_logging(cfg, args)
    cmd = args.command

    if cmd == "eval":
        return _cmd_eval(cfg, args)

    if cmd == "verify":
        return _cmd_verify(cfg, args)

    if cmd == "policy":
        print(json.dumps(cfg.policy.build_policy().to_dict(), indent=2))
        return 0

    print(f"Unknown command: {cmd}", file=sys.stderr)
    return 1


def main(argv: Optional[Sequence[str]] = None) -> int:
    """Entry point for the spdxflow command-line interface.

    Args:
        argv (Sequence[str] | None): Optional list of argument strings to
            parse instead of ``sys.argv[1:]``. Primarily useful for tests.

    Returns:
        int: Process exit code, where 0 indicates success and non-zero
        values indicate failure.
    """
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    try:
        return _dispatch(args)
    except Exception as exc:  # noqa: BLE001
        print(f"Error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
