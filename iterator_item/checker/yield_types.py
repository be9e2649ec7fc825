# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Single-yielded-type check.

Every `yield E` contributes the inferred type of `E`; in items whose element
type is `Result`/`Option`, every `E?` contributes its residual type as well
(`Result<_, E>` / `Option<_>`), since desugaring yields the residual. The
observations are unified, in source order, starting from the declared type.
The check is purely static, so yields in branches that never run still count.
"""

from __future__ import annotations

from typing import List, Optional, Tuple

from iterator_item.core.diagnostics import Diagnostic, ErrorKind
from iterator_item.core.span import Span
from iterator_item.parser import ast

from .types import ExprTyper, Scope, canonical_name, definition_mode, element_type, is_unknown, scope_for, unify


class _YieldCollector:
	def __init__(self, defn: ast.Definition) -> None:
		self.typer = ExprTyper.for_definition(defn)
		self.mode = definition_mode(defn)
		# (type, loc, description)
		self.observed: List[Tuple[ast.TypeExpr, ast.Located, str]] = []

	def walk_block(self, block: ast.Block, scope: Scope) -> None:
		inner = Scope(scope)
		for stmt in block.statements:
			self.walk_stmt(stmt, inner)
		if block.tail is not None:
			self.visit_expr(block.tail, inner)

	def walk_stmt(self, stmt: ast.Stmt, scope: Scope) -> None:
		if isinstance(stmt, ast.LetStmt):
			self.visit_expr(stmt.value, scope)
			if stmt.else_block is not None:
				self.walk_block(stmt.else_block, scope)
			ty = stmt.type_expr if stmt.type_expr is not None else self.typer.type_of(stmt.value, scope)
			scope.bind_pattern(stmt.pattern, ty)
		elif isinstance(stmt, ast.AssignStmt):
			self.visit_expr(stmt.target, scope)
			self.visit_expr(stmt.value, scope)
		elif isinstance(stmt, ast.ExprStmt):
			self.visit_expr(stmt.value, scope)
		elif isinstance(stmt, ast.ReturnStmt):
			if stmt.value is not None:
				self.visit_expr(stmt.value, scope)
		elif isinstance(stmt, (ast.IfStmt, ast.WhileStmt)):
			body_scope = self.visit_condition(stmt.condition, scope)
			if isinstance(stmt, ast.IfStmt):
				self.walk_block(stmt.then_block, body_scope)
				if stmt.else_block is not None:
					self.walk_block(stmt.else_block, scope)
			else:
				self.walk_block(stmt.body, body_scope)
		elif isinstance(stmt, ast.LoopStmt):
			self.walk_block(stmt.body, scope)
		elif isinstance(stmt, ast.ForStmt):
			self.visit_expr(stmt.iterable, scope)
			loop_scope = Scope(scope)
			loop_scope.bind_pattern(stmt.pattern, element_type(self.typer.type_of(stmt.iterable, scope)))
			self.walk_block(stmt.body, loop_scope)
		elif isinstance(stmt, ast.BlockStmt):
			self.walk_block(stmt.block, scope)
		elif isinstance(stmt, ast.MatchStmt):
			self.visit_expr(stmt.subject, scope)
			subject_ty = self.typer.type_of(stmt.subject, scope)
			for arm in stmt.arms:
				arm_scope = Scope(scope)
				arm_scope.bind_pattern(arm.pattern, subject_ty)
				if arm.guard is not None:
					self.visit_expr(arm.guard, arm_scope)
				self.walk_block(arm.body, arm_scope)
		# Nested `fn` items are separate functions; a `yield` there is a body error.

	def visit_condition(self, cond: ast.Condition, scope: Scope) -> Scope:
		if isinstance(cond, ast.LetCondition):
			self.visit_expr(cond.value, scope)
			bound = Scope(scope)
			bound.bind_pattern(cond.pattern, self.typer.type_of(cond.value, scope))
			return bound
		self.visit_expr(cond, scope)
		return scope

	def visit_expr(self, expr: ast.Expr, scope: Scope) -> None:
		for sub in ast.walk_expr(expr):
			if isinstance(sub, ast.YieldExpr):
				if sub.value is None:
					self.observed.append((ast.UNIT_TYPE, sub.loc, "`yield`"))
				else:
					self.observed.append((self.typer.type_of(sub.value, scope), sub.loc, "`yield`"))
			elif isinstance(sub, ast.TryExpr) and self.mode is not None:
				residual = _residual_type(self.typer.type_of(sub.expr, scope))
				if residual is not None:
					self.observed.append((residual, sub.loc, "`?`"))


def _residual_type(operand: ast.TypeExpr) -> Optional[ast.TypeExpr]:
	name = canonical_name(operand.name)
	if name == "Option":
		return ast.TypeExpr("Option", [ast.UNKNOWN_TYPE])
	if name == "Result":
		err = operand.args[1] if len(operand.args) > 1 else ast.UNKNOWN_TYPE
		return ast.TypeExpr("Result", [ast.UNKNOWN_TYPE, err])
	return None


def check_yielded_types(defn: ast.Definition, file: Optional[str] = None) -> List[Diagnostic]:
	"""Report every yield whose type conflicts with the item's element type."""
	collector = _YieldCollector(defn)
	collector.walk_block(defn.body, scope_for(defn))
	diagnostics: List[Diagnostic] = []
	current = defn.yielded_type
	fixed_at: Optional[ast.Located] = None
	for ty, loc, what in collector.observed:
		if is_unknown(ty):
			continue
		merged = unify(current, ty)
		if merged is None:
			if fixed_at is None:
				note = f"`{defn.name}` is declared to yield `{ast.format_type(defn.yielded_type)}`"
			else:
				note = f"the element type was fixed to `{ast.format_type(current)}` at line {fixed_at.line}, column {fixed_at.column}"
			verb = "yields" if what == "`yield`" else "would yield the residual"
			diagnostics.append(
				Diagnostic(
					message=(
						f"mismatched yielded type: {what} {verb} `{ast.format_type(ty)}`, "
						f"expected `{ast.format_type(current)}`"
					),
					code=ErrorKind.MULTIPLE_YIELDED_TYPES,
					phase="validate",
					span=Span.from_loc(loc, file=file),
					notes=[note],
				)
			)
			continue
		if merged != current:
			fixed_at = loc
		current = merged
	return diagnostics


__all__ = ["check_yielded_types"]
