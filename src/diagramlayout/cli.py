"""Command-line interface for diagramlayout layout/render workflows."""
from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import traceback
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

from .errors import (
    CyclicContainment,
    DuplicateIdentifier,
    InvalidDocument,
    InvalidOptions,
    LayoutError,
    UnresolvedReference,
    UnsatisfiableConstraints,
)
from .logging_config import setup_logging
from .pipeline import render_document
from .resources import load_format_reference

logger = logging.getLogger(__name__)

STDOUT = "-"
LOG_LEVELS = ["debug", "info", "warning", "error"]

_HINTS = {
    InvalidDocument: "Run `diagramlayout format` for the input reference.",
    InvalidOptions: "Check option names and values; run `diagramlayout format` for the list.",
    DuplicateIdentifier: "Give every element and relationship a distinct id.",
    UnresolvedReference: "Reference only ids declared in `elements`.",
    CyclicContainment: "An element cannot contain itself, directly or through its members.",
    UnsatisfiableConstraints: "Remove the fixed width/height or enlarge it.",
}


@dataclass
class CliError(Exception):
    code: str
    message: str
    hint: Optional[str] = None
    exit_code: int = 1
    file: Optional[str] = None
    line: Optional[int] = None
    column: Optional[int] = None
    retryable: bool = True


class UsageError(Exception):
    pass


class FriendlyArgumentParser(argparse.ArgumentParser):
    def error(self, message: str) -> None:  # pragma: no cover - argparse callback
        raise UsageError(message)


def _build_parser() -> argparse.ArgumentParser:
    parser = FriendlyArgumentParser(
        prog="diagramlayout",
        description="Lay out nested box-and-line diagrams and render them to SVG/JSON.",
    )
    parser.add_argument("--error-format", choices=["text", "json"], default="text")
    parser.add_argument("--debug", action="store_true")
    parser.add_argument("--log-level", choices=LOG_LEVELS, default="warning")
    parser.add_argument("--log-file", help="Also write log records to this file")

    subparsers = parser.add_subparsers(dest="command")

    layout_parser = subparsers.add_parser("layout", help="Lay out a diagram document")
    layout_parser.add_argument("input", nargs="?", help="Input .json diagram document")
    layout_parser.add_argument("--text", help="Raw JSON diagram document")
    layout_parser.add_argument("--svg", metavar="PATH", help="Write SVG here ('-' for stdout)")
    layout_parser.add_argument("--json", metavar="PATH", help="Write geometry JSON here ('-' for stdout)")
    layout_parser.add_argument("--scale", type=float, default=1.0, help="Scale the SVG's outer size")
    layout_parser.add_argument(
        "--option",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Override a layout option (repeatable)",
    )

    subparsers.add_parser("format", help="Print the input format reference")

    return parser


def _read_input(path: Optional[str], text: Optional[str]) -> Tuple[str, str]:
    if path and text is not None:
        raise CliError(
            "E_ARGS",
            "--text cannot be combined with file input",
            hint="Use either FILE or --text.",
            exit_code=2,
        )

    if text is not None:
        return text, "<text>"

    if path:
        input_path = Path(path)
        if not input_path.exists():
            raise CliError(
                "E_IO_READ",
                f"input file not found: {input_path}",
                exit_code=2,
                file=str(input_path),
            )
        try:
            return input_path.read_text(encoding="utf-8"), str(input_path)
        except OSError as exc:
            raise CliError(
                "E_IO_READ",
                f"failed to read input file: {input_path}",
                hint=str(exc),
                exit_code=2,
                file=str(input_path),
            )

    if sys.stdin.isatty():
        raise CliError(
            "E_ARGS",
            "no input provided",
            hint="Use `layout` with FILE, --text, or pipe stdin.",
            exit_code=2,
        )

    data = sys.stdin.read()
    if not data.strip():
        raise CliError(
            "E_ARGS",
            "stdin was empty",
            hint="Pipe a JSON diagram document into stdin.",
            exit_code=2,
        )
    return data, "<stdin>"


def _parse_document(source: str, source_name: str) -> Any:
    try:
        return json.loads(source)
    except json.JSONDecodeError as exc:
        raise CliError(
            "E_PARSE_JSON",
            f"failed to parse JSON: {exc.msg}",
            hint="Ensure input is a well-formed JSON document.",
            exit_code=2,
            file=source_name,
            line=exc.lineno,
            column=exc.colno,
        )


def _write_text(path: Path, content: str) -> None:
    try:
        path.write_text(content, encoding="utf-8")
    except OSError as exc:
        raise CliError(
            "E_IO_WRITE",
            f"failed to write output file: {path}",
            hint=str(exc),
            exit_code=4,
            file=str(path),
        )


def _error_from_exception(exc: Exception) -> CliError:
    if isinstance(exc, CliError):
        return exc
    if isinstance(exc, LayoutError):
        return CliError(
            exc.code,
            exc.message,
            hint=_HINTS.get(type(exc)),
            exit_code=3,
            retryable=True,
        )
    return CliError(
        "E_INTERNAL",
        str(exc) or exc.__class__.__name__,
        hint="Re-run with --debug to see traceback.",
        exit_code=1,
        retryable=False,
    )


def _emit_error(err: CliError, *, error_format: str) -> None:
    if error_format == "json":
        payload = {
            "ok": False,
            "code": err.code,
            "message": err.message,
            "file": err.file,
            "line": err.line,
            "column": err.column,
            "hint": err.hint,
            "retryable": err.retryable,
        }
        sys.stderr.write(json.dumps(payload) + "\n")
        return

    sys.stderr.write(f"error[{err.code}]: {err.message}\n")
    if err.hint:
        sys.stderr.write(f"hint: {err.hint}\n")


def _handle_layout(args: argparse.Namespace) -> int:
    if args.svg == STDOUT and args.json == STDOUT:
        raise CliError(
            "E_ARGS",
            "--svg and --json cannot both write to stdout",
            hint="Send at most one output to '-'.",
            exit_code=2,
        )
    if args.scale <= 0:
        raise CliError(
            "E_ARGS",
            "--scale must be > 0",
            hint="Use a positive scale factor like 1 or 2.",
            exit_code=2,
        )

    source, source_name = _read_input(args.input, args.text)
    document = _parse_document(source, source_name)
    result = render_document(
        document,
        svg=args.svg is not None,
        json=args.json is not None,
        overrides=args.option,
        scale=args.scale,
    )

    outputs: List[Tuple[str, str]] = []
    if args.svg is not None and result.svg is not None:
        outputs.append((args.svg, result.svg))
    if args.json is not None and result.json is not None:
        outputs.append((args.json, result.json))

    if not outputs:
        logger.info(
            "%s is valid: %d elements, %d relationships",
            source_name,
            len(result.model.elements),
            len(result.model.relationships),
        )
        return 0

    status = sys.stderr if any(dest == STDOUT for dest, _ in outputs) else sys.stdout
    for dest, content in outputs:
        if dest == STDOUT:
            sys.stdout.write(content)
            if not content.endswith("\n"):
                sys.stdout.write("\n")
            continue
        output_path = Path(dest)
        _write_text(output_path, content)
        print(f"Wrote {output_path}", file=status)
    return 0


def main(argv: Optional[Iterable[str]] = None) -> int:
    raw_argv = list(argv) if argv is not None else sys.argv[1:]
    parser = _build_parser()

    if not raw_argv:
        err = CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: layout, format.",
            exit_code=2,
        )
        _emit_error(err, error_format="text")
        return err.exit_code

    debug_enabled = "--debug" in raw_argv or os.getenv("DIAGRAMLAYOUT_DEBUG") == "1"
    error_format = "text"
    if "--error-format" in raw_argv:
        idx = raw_argv.index("--error-format")
        if idx + 1 < len(raw_argv):
            error_format = raw_argv[idx + 1]

    try:
        args = parser.parse_args(raw_argv)
        error_format = args.error_format
        setup_logging("debug" if debug_enabled else args.log_level, args.log_file)

        if args.command == "layout":
            return _handle_layout(args)
        if args.command == "format":
            print(load_format_reference())
            return 0

        raise CliError(
            "E_ARGS",
            "missing subcommand",
            hint="Use one of: layout, format.",
            exit_code=2,
        )
    except UsageError as exc:
        err = CliError(
            "E_ARGS",
            str(exc),
            hint="Use subcommands: layout, format.",
            exit_code=2,
        )
        _emit_error(err, error_format=error_format)
        return err.exit_code
    except Exception as exc:  # pragma: no cover - exercised in integration tests
        err = _error_from_exception(exc)
        _emit_error(err, error_format=error_format)
        if debug_enabled:
            traceback.print_exc(file=sys.stderr)
        return err.exit_code


if __name__ == "__main__":
    raise SystemExit(main())
