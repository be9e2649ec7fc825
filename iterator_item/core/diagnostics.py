# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Common diagnostic structure for the recognizer/validator/driver passes.

Stages never raise on user errors: they append `Diagnostic`s to a list and the
pipeline decides whether to continue. `ExpansionError` is only raised at the
public API boundary, carrying everything that was collected.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, List

from .span import Span


class ErrorKind(str, Enum):
	"""Error taxonomy reported through `Diagnostic.code`."""

	MALFORMED_SIGNATURE = "MalformedSignature"
	MALFORMED_BODY = "MalformedBody"
	MULTIPLE_YIELDED_TYPES = "MultipleYieldedTypes"
	NON_UNIT_RETURN = "NonUnitReturn"
	ESCAPING_SELF_REFERENCE = "EscapingSelfReference"


@dataclass
class Diagnostic:
	"""Represents an expansion diagnostic (error/warning)."""

	message: str
	code: str | None = None
	# Pipeline phase that produced the diagnostic ("parser", "validate", ...).
	phase: str | None = None
	severity: str = "error"
	span: Span = field(default_factory=Span)  # Source location (Span() denotes unknown).
	notes: list[str] = field(default_factory=list)

	def __post_init__(self) -> None:
		if self.span is None:  # type: ignore[unreachable]
			self.span = Span()
		if isinstance(self.code, ErrorKind):
			self.code = self.code.value

	@property
	def is_error(self) -> bool:
		return self.severity == "error"

	def render(self) -> str:
		"""Render as `file:line:col: severity: message` followed by `note:` lines."""
		lines = [f"{self.span.describe()}: {self.severity}: {self.message}"]
		lines.extend(f"  note: {note}" for note in self.notes)
		return "\n".join(lines)


def has_errors(diagnostics: Iterable[Diagnostic]) -> bool:
	return any(d.is_error for d in diagnostics)


class ExpansionError(Exception):
	"""Raised by the public API when expansion produced error diagnostics."""

	def __init__(self, diagnostics: List[Diagnostic]) -> None:
		self.diagnostics = list(diagnostics)
		errors = [d for d in self.diagnostics if d.is_error]
		summary = errors[0].render() if errors else "expansion failed"
		if len(errors) > 1:
			summary += f" (and {len(errors) - 1} more error(s))"
		super().__init__(summary)

	@property
	def kinds(self) -> List[str]:
		"""Error codes in report order; handy for assertions."""
		return [d.code for d in self.diagnostics if d.is_error and d.code]


__all__ = ["Diagnostic", "ErrorKind", "ExpansionError", "has_errors"]
