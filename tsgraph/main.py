#!/usr/bin/env python3
"""tsgraph/main.py: command-line front end.

Usage examples
--------------
    # Parse and validate a rule file
    tsgraph check rules.tsg --language python

    # Build the graph of a source file and print it
    tsgraph parse rules.tsg module.py --language python

    # Same, as canonical JSON, with a caller-supplied global
    tsgraph parse rules.tsg module.py -l python --format json --global FILE_PATH=module.py

    # List the built-in functions
    tsgraph builtins

Exit codes
----------
    0   Success.
    1   The rule file is invalid, or execution failed.
    2   Infrastructure failure (missing file, missing grammar, bad option).

The module doubles as ``python -m tsgraph`` via ``tsgraph/__main__.py``.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
import textwrap
from pathlib import Path
from typing import Dict, Optional, Sequence, TextIO

from tsgraph import __version__
from tsgraph.builtins import BUILTIN_FUNCTIONS
from tsgraph.errors import TsgError
from tsgraph.graph import DuplicatePolicy
from tsgraph.languages import LanguageNotFound, load_language, make_parser
from tsgraph.rules import compile_rules
from tsgraph.runtime import ExecutionConfig

_log = logging.getLogger("tsgraph")

EXIT_OK: int = 0
EXIT_ERROR: int = 1
EXIT_INFRA: int = 2


# ===========================================================================
# Utility helpers
# ===========================================================================

def _configure_logging(verbosity: int) -> None:
    """Set up the ``tsgraph`` logger: 0 → WARNING, 1 → INFO, 2+ → DEBUG."""
    level = logging.WARNING
    if verbosity == 1:
        level = logging.INFO
    elif verbosity >= 2:
        level = logging.DEBUG

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(
        logging.Formatter(
            fmt="%(asctime)s [%(levelname)-5.5s] %(name)s: %(message)s",
            datefmt="%H:%M:%S",
        )
    )
    root = logging.getLogger("tsgraph")
    root.setLevel(level)
    root.addHandler(handler)


def _resolve_path(raw: str, label: str = "file") -> Path:
    """Resolve *raw* to an absolute ``Path``, raising on missing files."""
    p = Path(raw).expanduser().resolve()
    if not p.exists():
        _log.error("%s not found: %s", label, p)
        raise SystemExit(EXIT_INFRA)
    return p


def _open_output(dest: Optional[str]) -> TextIO:
    if dest is None or dest == "-":
        return sys.stdout
    p = Path(dest).expanduser().resolve()
    p.parent.mkdir(parents=True, exist_ok=True)
    return open(p, "w", encoding="utf-8")


def _report(error: TsgError, fmt: str) -> None:
    if fmt == "json":
        sys.stderr.write(json.dumps(error.to_json()) + "\n")
    else:
        sys.stderr.write(error.to_gcc_format() + "\n")


def _parse_globals(pairs: Sequence[str]) -> Dict[str, str]:
    result: Dict[str, str] = {}
    for pair in pairs:
        name, sep, value = pair.partition("=")
        if not sep or not name:
            _log.error("--global expects NAME=VALUE, got %r", pair)
            raise SystemExit(EXIT_INFRA)
        result[name] = value
    return result


def _load_language(name: Optional[str]):
    if name is None:
        return None
    try:
        return load_language(name)
    except LanguageNotFound as exc:
        _log.error("%s", exc)
        raise SystemExit(EXIT_INFRA)


# ===========================================================================
# Subcommands
# ===========================================================================

def cmd_check(args: argparse.Namespace) -> int:
    """Parse and validate a rule file without running it."""
    rules_path = _resolve_path(args.rules, "rule file")
    language = _load_language(args.language)
    try:
        rules = compile_rules(rules_path.read_text(encoding="utf-8"), language, filename=str(rules_path))
    except TsgError as exc:
        _report(exc, args.format)
        return EXIT_ERROR
    _log.info("%s: %d stanza(s), %d function(s)", rules_path, len(rules.stanzas), len(rules.functions))
    return EXIT_OK


def cmd_parse(args: argparse.Namespace) -> int:
    """Run a rule file over one source file and print the resulting graph."""
    rules_path = _resolve_path(args.rules, "rule file")
    source_path = _resolve_path(args.source, "source file")
    language = _load_language(args.language)

    try:
        rules = compile_rules(rules_path.read_text(encoding="utf-8"), language, filename=str(rules_path))
    except TsgError as exc:
        _report(exc, args.format)
        return EXIT_ERROR

    source = source_path.read_bytes()
    tree = make_parser(args.language).parse(source)
    if tree.root_node.has_error and not args.allow_parse_errors:
        _log.error("%s contains syntax errors (use --allow-parse-errors to continue)", source_path)
        return EXIT_ERROR

    config = ExecutionConfig(
        globals=_parse_globals(args.globals),
        duplicates=DuplicatePolicy.PERMISSIVE if args.permissive else DuplicatePolicy.STRICT,
        max_call_depth=args.max_call_depth,
    )
    try:
        graph = rules.execute(tree, source, config)
    except TsgError as exc:
        _report(exc, args.format)
        return EXIT_ERROR

    out = _open_output(args.output)
    try:
        if args.format == "json":
            out.write(json.dumps(graph.to_json(), indent=2) + "\n")
        else:
            out.write(graph.pretty() + "\n")
    finally:
        if out is not sys.stdout:
            out.close()
    return EXIT_OK


def cmd_builtins(args: argparse.Namespace) -> int:
    """List the built-in functions with their arities."""
    for name in sorted(BUILTIN_FUNCTIONS):
        builtin = BUILTIN_FUNCTIONS[name]
        line = f"{name:<22} {builtin.arity_text():<14}"
        if builtin.description:
            line += builtin.description
        print(line.rstrip())
    return EXIT_OK


# ===========================================================================
# Argument parser
# ===========================================================================

def _build_parser() -> argparse.ArgumentParser:
    """Construct the full CLI argument parser with subcommands."""
    parser = argparse.ArgumentParser(
        prog="tsgraph",
        description="Build graphs from tree-sitter syntax trees with declarative rule files.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""\
            examples:
              tsgraph check rules.tsg --language python
              tsgraph parse rules.tsg module.py -l python --format json
        """),
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument(
        "-v", "--verbose",
        action="count",
        default=0,
        help="Increase verbosity (-v info, -vv debug).",
    )

    subparsers = parser.add_subparsers(dest="command", title="commands", metavar="<command>")

    def _add_format_arg(p: argparse.ArgumentParser) -> None:
        p.add_argument(
            "--format",
            choices=("text", "json"),
            default="text",
            help="Output format for graphs and diagnostics (default: text).",
        )

    p_check = subparsers.add_parser("check", help="Parse and validate a rule file.")
    p_check.add_argument("rules", metavar="RULES", help="Rule file (.tsg).")
    p_check.add_argument(
        "-l", "--language",
        help="Also compile every stanza pattern against this grammar.",
    )
    _add_format_arg(p_check)
    p_check.set_defaults(func=cmd_check)

    p_parse = subparsers.add_parser("parse", help="Build the graph of a source file.")
    p_parse.add_argument("rules", metavar="RULES", help="Rule file (.tsg).")
    p_parse.add_argument("source", metavar="SOURCE", help="Source file to parse.")
    p_parse.add_argument("-l", "--language", required=True, help="Grammar of SOURCE, e.g. python.")
    p_parse.add_argument(
        "-g", "--global",
        dest="globals",
        action="append",
        default=[],
        metavar="NAME=VALUE",
        help="Bind a string global (repeatable).",
    )
    p_parse.add_argument(
        "--permissive",
        action="store_true",
        help=(
            "Keep the first value of conflicting attributes, and reuse an edge "
            "already created by a different statement, instead of failing."
        ),
    )
    p_parse.add_argument(
        "--max-call-depth",
        type=int,
        default=64,
        metavar="N",
        help="Maximum nesting of function calls (default: 64).",
    )
    p_parse.add_argument(
        "--allow-parse-errors",
        action="store_true",
        help="Run even if SOURCE has syntax errors.",
    )
    p_parse.add_argument("-o", "--output", help="Write the graph here instead of stdout.")
    _add_format_arg(p_parse)
    p_parse.set_defaults(func=cmd_parse)

    p_builtins = subparsers.add_parser("builtins", help="List the built-in functions.")
    p_builtins.set_defaults(func=cmd_builtins)

    return parser


# ===========================================================================
# Main entry point
# ===========================================================================

def main(argv: Optional[Sequence[str]] = None) -> int:
    """Run the CLI and return its exit code (see the module docstring)."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    _configure_logging(args.verbose)

    if not hasattr(args, "func"):
        parser.print_help(sys.stderr)
        return EXIT_INFRA

    try:
        return args.func(args)
    except KeyboardInterrupt:
        _log.info("Interrupted by user.")
        return 130
    except SystemExit as exc:
        return exc.code if isinstance(exc.code, int) else EXIT_INFRA
    except Exception as exc:
        _log.error("Unhandled exception: %s", exc, exc_info=True)
        return EXIT_INFRA


if __name__ == "__main__":
    raise SystemExit(main())
