# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Restriction validator.

Runs every check on a Definition and returns all diagnostics at once; one
violation never hides another. The checks are read-only.
"""

from __future__ import annotations

from typing import List, Optional

from iterator_item.core.diagnostics import Diagnostic
from iterator_item.parser import ast

from .returns import check_returns
from .self_refs import check_self_references
from .structure import check_structure
from .yield_types import check_yielded_types


def validate_definition(defn: ast.Definition, file: Optional[str] = None) -> List[Diagnostic]:
	diagnostics: List[Diagnostic] = []
	diagnostics.extend(check_structure(defn, file))
	diagnostics.extend(check_yielded_types(defn, file))
	diagnostics.extend(check_returns(defn, file))
	diagnostics.extend(check_self_references(defn, file))
	return diagnostics


__all__ = [
	"check_returns",
	"check_self_references",
	"check_structure",
	"check_yielded_types",
	"validate_definition",
]
