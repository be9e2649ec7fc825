# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Stage orchestration: parse -> validate -> desugar -> emit.

Each phase collects diagnostics; an error in a phase stops the pipeline after
that phase, warnings are carried along. `expand` never raises on user errors;
`expand_or_raise`, `load` and `iterator_item` raise `ExpansionError`.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, List, Mapping, Optional

from iterator_item.checker import validate_definition
from iterator_item.core.diagnostics import Diagnostic, ExpansionError, has_errors
from iterator_item.desugar import desugar_definition
from iterator_item.emit import EmitOptions, emit_module
from iterator_item.parser import ast, parse_items


@dataclass
class ExpansionResult:
	"""Output of `expand`: generated code (None on error) plus every diagnostic."""

	code: Optional[str]
	diagnostics: List[Diagnostic] = field(default_factory=list)
	definitions: List[ast.Definition] = field(default_factory=list)

	@property
	def ok(self) -> bool:
		return self.code is not None


def expand(source: str, *, filename: str = "<source>", options: Optional[EmitOptions] = None) -> ExpansionResult:
	diagnostics: List[Diagnostic] = []
	definitions, parse_diags = parse_items(source, file=filename)
	diagnostics.extend(parse_diags)
	if has_errors(diagnostics):
		return ExpansionResult(code=None, diagnostics=diagnostics, definitions=definitions)

	for defn in definitions:
		diagnostics.extend(validate_definition(defn, file=filename))
	if has_errors(diagnostics):
		return ExpansionResult(code=None, diagnostics=diagnostics, definitions=definitions)

	lowered = [desugar_definition(defn) for defn in definitions]
	options = options or EmitOptions()
	if options.source_name is None:
		options = replace(options, source_name=filename)
	code = emit_module(lowered, options)
	return ExpansionResult(code=code, diagnostics=diagnostics, definitions=definitions)


def expand_or_raise(source: str, *, filename: str = "<source>", options: Optional[EmitOptions] = None) -> str:
	"""Like `expand`, but raise ExpansionError instead of returning error diagnostics."""
	result = expand(source, filename=filename, options=options)
	if result.code is None:
		raise ExpansionError(result.diagnostics)
	return result.code


def load(
	source: str,
	env: Optional[Mapping[str, Any]] = None,
	*,
	filename: str = "<source>",
	options: Optional[EmitOptions] = None,
) -> Dict[str, Callable[..., Any]]:
	"""
	Expand `source`, execute the generated module and return its item functions.

	`env` seeds the module namespace; bodies resolve free names (helper
	functions, constants) against it. The returned mapping is keyed by item
	name, in source order.
	"""
	result = expand(source, filename=filename, options=options)
	if result.code is None:
		raise ExpansionError(result.diagnostics)
	namespace: Dict[str, Any] = dict(env or {})
	namespace.setdefault("__name__", f"iterator_item.generated.{filename}")
	exec(compile(result.code, filename, "exec"), namespace)
	return {defn.name: namespace[defn.name] for defn in result.definitions}


def iterator_item(source: str, env: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> Callable[..., Any]:
	"""Load a source holding exactly one item and return its function."""
	loaded = load(source, env, **kwargs)
	if len(loaded) != 1:
		raise ValueError(f"expected exactly one iterator item, found {len(loaded)}")
	return next(iter(loaded.values()))


__all__ = ["ExpansionResult", "expand", "expand_or_raise", "iterator_item", "load"]
