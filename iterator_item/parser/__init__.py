# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Syntax recognizer front end.

Adapts the lark-based item parser into `(definitions, diagnostics)`; every
recognizer failure becomes a `MalformedSignature` or `MalformedBody`
diagnostic in the "parser" phase.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from lark.exceptions import UnexpectedInput

from iterator_item.core.diagnostics import Diagnostic, ErrorKind
from iterator_item.core.span import Span

from . import ast
from .parser import BodyError, ItemSyntaxError, SignatureError, describe_unexpected, parse_item, scan_items


def parse_items(source: str, file: Optional[str] = None) -> Tuple[List[ast.Definition], List[Diagnostic]]:
	"""Recognize every item in `source`; items with errors are dropped and reported."""
	slices, problems = scan_items(source)
	diagnostics = [_syntax_diagnostic(err, file) for err in problems]
	definitions: List[ast.Definition] = []
	for item in slices:
		try:
			definitions.append(parse_item(item))
		except UnexpectedInput as err:
			message, notes = describe_unexpected(err)
			line = getattr(err, "line", None)
			column = getattr(err, "column", None)
			expected = set(getattr(err, "expected", None) or ())
			# A missing `gen` block makes the whole item the wrong shape.
			if item.in_body(line, column) and "GEN" not in expected:
				kind = ErrorKind.MALFORMED_BODY
			else:
				kind = ErrorKind.MALFORMED_SIGNATURE
			if line is None or line < 0:
				line, column = item.body_open
			diagnostics.append(
				Diagnostic(
					message=message,
					code=kind,
					phase="parser",
					span=Span(file=file, line=line, column=column, raw=err),
					notes=notes,
				)
			)
		except ItemSyntaxError as err:
			diagnostics.append(_syntax_diagnostic(err, file))
	return definitions, diagnostics


def _syntax_diagnostic(err: ItemSyntaxError, file: Optional[str]) -> Diagnostic:
	return Diagnostic(
		message=str(err),
		code=err.kind,
		phase="parser",
		span=Span.from_loc(err.loc, file=file),
		notes=list(err.notes),
	)


__all__ = ["BodyError", "SignatureError", "ast", "parse_items"]
