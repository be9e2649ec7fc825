# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Command-line driver: expand iterator items in source files into Python modules.

    python -m iterator_item SOURCE... [-o OUT | --out-dir DIR] [--check] [--json]

Without an output option the generated module is written to stdout (single
source only; suppressed by `--json`). `--check` runs parse/validate only.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import List

from iterator_item.core.diagnostics import Diagnostic, has_errors
from iterator_item.core.span import Span
from iterator_item.emit import EmitOptions
from iterator_item.pipeline import expand


def _diag_to_json(diag: Diagnostic, source: Path) -> dict:
	"""Render a Diagnostic to a structured JSON-friendly dict."""
	return {
		"phase": diag.phase,
		"code": diag.code,
		"message": diag.message,
		"severity": diag.severity,
		"file": diag.span.file or str(source),
		"line": diag.span.line,
		"column": diag.span.column,
		"notes": list(diag.notes),
	}


def _output_path(source: Path, out_dir: Path) -> Path:
	return out_dir / f"{source.stem.replace('-', '_')}.py"


def main(argv: list[str] | None = None) -> int:
	"""
	Expand every source; fails if any source reports an error.

	With --json, prints structured diagnostics (phase/code/message/severity/
	file/line/column/notes) and an exit_code; otherwise prints human-readable
	messages to stderr.
	"""
	parser = argparse.ArgumentParser(prog="iterator_item", description="Expand fn* iterator items into Python")
	parser.add_argument("source", type=Path, nargs="+", help="Path(s) to source file(s)")
	parser.add_argument("-o", "--output", type=Path, help="Write the generated module here (single source only)")
	parser.add_argument("--out-dir", type=Path, help="Write one <stem>.py per source into this directory")
	parser.add_argument("--check", action="store_true", help="Only parse and validate; write nothing")
	parser.add_argument("--json", action="store_true", help="Emit diagnostics as JSON to stdout")
	parser.add_argument(
		"--runtime-module",
		default=EmitOptions.runtime_module,
		help="Module the generated code imports as its runtime (default: %(default)s)",
	)
	parser.add_argument("--no-header", action="store_true", help="Omit the generated-file banner")
	args = parser.parse_args(argv)

	if args.output is not None and args.out_dir is not None:
		parser.error("-o/--output and --out-dir are mutually exclusive")
	if args.output is not None and len(args.source) != 1:
		parser.error("-o/--output needs exactly one source")
	if args.output is None and args.out_dir is None and not args.check and len(args.source) != 1:
		parser.error("several sources need --out-dir (or --check)")

	diagnostics: List[tuple[Diagnostic, Path]] = []
	outputs: List[tuple[Path, str]] = []
	for source_path in args.source:
		try:
			text = source_path.read_text(encoding="utf-8")
		except OSError as err:
			diagnostics.append((Diagnostic(message=f"cannot read source: {err.strerror}", phase="driver", span=Span(file=str(source_path))), source_path))
			continue
		except UnicodeDecodeError as err:
			message = f"cannot read source: not valid UTF-8 ({err.reason} at byte {err.start})"
			diagnostics.append((Diagnostic(message=message, phase="driver", span=Span(file=str(source_path))), source_path))
			continue
		options = EmitOptions(
			runtime_module=args.runtime_module,
			header=not args.no_header,
			source_name=source_path.name,
		)
		result = expand(text, filename=str(source_path), options=options)
		diagnostics.extend((d, source_path) for d in result.diagnostics)
		if result.code is not None:
			outputs.append((source_path, result.code))

	failed = has_errors(d for d, _ in diagnostics)
	if not failed and not args.check:
		for source_path, code in outputs:
			if args.output is not None:
				args.output.write_text(code, encoding="utf-8")
			elif args.out_dir is not None:
				args.out_dir.mkdir(parents=True, exist_ok=True)
				_output_path(source_path, args.out_dir).write_text(code, encoding="utf-8")
			elif not args.json:
				sys.stdout.write(code)

	exit_code = 1 if failed else 0
	if args.json:
		payload = {
			"exit_code": exit_code,
			"diagnostics": [_diag_to_json(d, src) for d, src in diagnostics],
		}
		print(json.dumps(payload))
	else:
		for d, _ in diagnostics:
			print(d.render(), file=sys.stderr)
	return exit_code


__all__ = ["main"]
