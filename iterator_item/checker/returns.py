# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Unit-only return check.

`return` inside an iterator item only stops the sequence, so it may not carry
a value other than `()`. A top-level tail expression is an implicit return
and gets the same treatment when its type is known to be something else.
Nested `fn` items are ordinary functions and are not checked here.
"""

from __future__ import annotations

from typing import Iterator, List, Optional

from iterator_item.core.diagnostics import Diagnostic, ErrorKind
from iterator_item.core.span import Span
from iterator_item.parser import ast

from .types import ExprTyper, is_unknown, scope_for

_HELP = "returning in an iterator is only meant for stopping the iterator"


def _is_unit(expr: ast.Expr) -> bool:
	if isinstance(expr, ast.Literal) and expr.kind == "unit":
		return True
	return isinstance(expr, ast.TupleLit) and not expr.elements


def _returns(block: ast.Block) -> Iterator[ast.ReturnStmt]:
	for stmt in block.statements:
		if isinstance(stmt, ast.ReturnStmt):
			yield stmt
		elif isinstance(stmt, ast.LetStmt) and stmt.else_block is not None:
			yield from _returns(stmt.else_block)
		elif isinstance(stmt, ast.IfStmt):
			yield from _returns(stmt.then_block)
			if stmt.else_block is not None:
				yield from _returns(stmt.else_block)
		elif isinstance(stmt, (ast.WhileStmt, ast.LoopStmt, ast.ForStmt)):
			yield from _returns(stmt.body)
		elif isinstance(stmt, ast.BlockStmt):
			yield from _returns(stmt.block)
		elif isinstance(stmt, ast.MatchStmt):
			for arm in stmt.arms:
				yield from _returns(arm.body)


def check_returns(defn: ast.Definition, file: Optional[str] = None) -> List[Diagnostic]:
	diagnostics: List[Diagnostic] = []
	for ret in _returns(defn.body):
		if ret.value is not None and not _is_unit(ret.value):
			diagnostics.append(
				Diagnostic(
					message="iterator items can't return a non-`()` value",
					code=ErrorKind.NON_UNIT_RETURN,
					phase="validate",
					span=Span.from_loc(ret.value.loc, file=file),
					notes=[_HELP, "use `yield` to produce the value, then `return;`"],
				)
			)
	tail = defn.body.tail
	if tail is not None and not _is_unit(tail) and not isinstance(tail, ast.YieldExpr):
		typer = ExprTyper.for_definition(defn)
		scope = scope_for(defn)
		for stmt in defn.body.statements:
			if isinstance(stmt, ast.LetStmt):
				scope.bind_pattern(stmt.pattern, stmt.type_expr or typer.type_of(stmt.value, scope))
		ty = typer.type_of(tail, scope)
		if not is_unknown(ty) and ty != ast.UNIT_TYPE:
			diagnostics.append(
				Diagnostic(
					message=f"iterator items can't return a non-`()` value (the tail expression has type `{ast.format_type(ty)}`)",
					code=ErrorKind.NON_UNIT_RETURN,
					phase="validate",
					span=Span.from_loc(tail.loc, file=file),
					notes=[_HELP, "add `;` after the expression to discard it"],
				)
			)
	return diagnostics


__all__ = ["check_returns"]
