# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Source span representation used by diagnostics.

A Span carries best-effort file/line/column info. Parser locations
(`Located`) and lark tokens/exceptions all expose `line`/`column`, so
`Span.from_loc` accepts any of them and keeps the original object in `raw`.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Any, Optional


@dataclass(frozen=True)
class Span:
	"""Represents a source span (best-effort file/line/column plus raw parser loc)."""

	file: Optional[str] = None
	line: Optional[int] = None
	column: Optional[int] = None
	end_line: Optional[int] = None
	end_column: Optional[int] = None
	raw: Any = None

	@classmethod
	def from_loc(cls, loc: Any, *, file: Optional[str] = None) -> "Span":
		"""
		Construct a Span from an existing parser/location object.

		If `loc` is already a Span it is returned unchanged (with `file` filled in
		when it was missing). Lark reports unknown positions as -1; those are
		normalized to None.
		"""
		if loc is None:
			return cls(file=file)
		if isinstance(loc, cls):
			if loc.file is None and file is not None:
				return replace(loc, file=file)
			return loc
		return cls(
			file=file or getattr(loc, "file", None),
			line=_known(getattr(loc, "line", None)),
			column=_known(getattr(loc, "column", None)),
			end_line=_known(getattr(loc, "end_line", None)),
			end_column=_known(getattr(loc, "end_column", None)),
			raw=loc,
		)

	def describe(self) -> str:
		"""`file:line:col` with unknown parts omitted."""
		parts = [self.file or "<unknown>"]
		if self.line is not None:
			parts.append(str(self.line))
			if self.column is not None:
				parts.append(str(self.column))
		return ":".join(parts)


def _known(value: Any) -> Optional[int]:
	if isinstance(value, int) and value >= 0:
		return value
	return None


__all__ = ["Span"]
