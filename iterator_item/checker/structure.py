# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Body well-formedness checks that the grammar cannot express.

These run next to the three item restrictions and report `MalformedBody`
(or `MalformedSignature` for attribute arguments). Unknown attributes only
produce a warning.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import List, Optional

from iterator_item.core.diagnostics import Diagnostic, ErrorKind
from iterator_item.core.span import Span
from iterator_item.parser import ast

_KNOWN_ATTRIBUTES = frozenset({"size_hint"})


@dataclass(frozen=True)
class _Context:
	in_loop: bool = False
	in_nested_fn: bool = False
	# Statements of a gen-block function that run before the `gen` block.
	in_prelude: bool = False


def _place(expr: ast.Expr) -> bool:
	if isinstance(expr, ast.Name):
		return True
	if isinstance(expr, (ast.Field, ast.TupleField)):
		return _place(expr.value)
	if isinstance(expr, ast.Index):
		return _place(expr.value)
	if isinstance(expr, ast.Unary) and expr.op == "*":
		return True
	return False


def _diverges(block: ast.Block) -> bool:
	if block.tail is not None:
		return isinstance(block.tail, ast.MacroCall) and block.tail.name == "panic"
	if not block.statements:
		return False
	last = block.statements[-1]
	if isinstance(last, (ast.ReturnStmt, ast.BreakStmt, ast.ContinueStmt, ast.TerminateStmt)):
		return True
	if isinstance(last, ast.ExprStmt):
		return isinstance(last.value, ast.MacroCall) and last.value.name == "panic"
	if isinstance(last, ast.BlockStmt):
		return _diverges(last.block)
	if isinstance(last, ast.IfStmt) and last.else_block is not None:
		return _diverges(last.then_block) and _diverges(last.else_block)
	if isinstance(last, ast.MatchStmt) and last.arms:
		return all(_diverges(arm.body) for arm in last.arms)
	return False


class _StructureChecker:
	def __init__(self, defn: ast.Definition, file: Optional[str]) -> None:
		self.defn = defn
		self.file = file
		self.diagnostics: List[Diagnostic] = []

	def _error(self, message: str, loc: ast.Located, notes: Optional[List[str]] = None, code: ErrorKind = ErrorKind.MALFORMED_BODY) -> None:
		self.diagnostics.append(
			Diagnostic(
				message=message,
				code=code,
				phase="validate",
				span=Span.from_loc(loc, file=self.file),
				notes=notes or [],
			)
		)

	def check_attributes(self) -> None:
		for attr in self.defn.attributes:
			if attr.name not in _KNOWN_ATTRIBUTES:
				self.diagnostics.append(
					Diagnostic(
						message=f"attribute `#[{attr.name}]` has no effect on iterator items and is ignored",
						phase="validate",
						severity="warning",
						span=Span.from_loc(attr.loc, file=self.file),
					)
				)
				continue
			for arg in attr.args:
				for sub in ast.walk_expr(arg):
					if isinstance(sub, (ast.YieldExpr, ast.TryExpr, ast.AwaitExpr)):
						self._error(
							f"`#[{attr.name}]` arguments cannot suspend or propagate errors",
							sub.loc,
							code=ErrorKind.MALFORMED_SIGNATURE,
						)

	def block(self, block: ast.Block, ctx: _Context) -> None:
		for stmt in block.statements:
			self.stmt(stmt, ctx)
		if block.tail is not None:
			self.expr(block.tail, ctx)

	def stmt(self, stmt: ast.Stmt, ctx: _Context) -> None:
		if isinstance(stmt, ast.LetStmt):
			self.expr(stmt.value, ctx)
			if stmt.else_block is not None:
				self.block(stmt.else_block, ctx)
				if not _diverges(stmt.else_block):
					self._error(
						"`else` clause of `let...else` does not diverge",
						stmt.else_block.loc,
						notes=["end the `else` block with `return`, `break`, `continue` or `panic!`"],
					)
			elif ast.is_refutable(stmt.pattern):
				self._error(
					"refutable pattern in local binding",
					stmt.pattern.loc,
					notes=["use `let ... else { ... };` or `if let` to handle the other case"],
				)
		elif isinstance(stmt, ast.AssignStmt):
			if not _place(stmt.target):
				self._error("invalid left-hand side of assignment", stmt.target.loc)
			self.expr(stmt.target, ctx)
			self.expr(stmt.value, ctx)
		elif isinstance(stmt, ast.ExprStmt):
			self.expr(stmt.value, ctx)
		elif isinstance(stmt, ast.ReturnStmt):
			if ctx.in_prelude:
				self._error("`return` before the `gen` block", stmt.loc, notes=["the function must end with its `gen { ... }` block"])
			if stmt.value is not None:
				self.expr(stmt.value, ctx)
		elif isinstance(stmt, (ast.BreakStmt, ast.ContinueStmt)):
			if not ctx.in_loop:
				word = "break" if isinstance(stmt, ast.BreakStmt) else "continue"
				self._error(f"`{word}` outside of a loop", stmt.loc)
		elif isinstance(stmt, ast.IfStmt):
			self.condition(stmt.condition, ctx)
			self.block(stmt.then_block, ctx)
			if stmt.else_block is not None:
				self.block(stmt.else_block, ctx)
		elif isinstance(stmt, ast.WhileStmt):
			self.condition(stmt.condition, ctx)
			self.block(stmt.body, replace(ctx, in_loop=True))
		elif isinstance(stmt, ast.LoopStmt):
			self.block(stmt.body, replace(ctx, in_loop=True))
		elif isinstance(stmt, ast.ForStmt):
			if ast.is_refutable(stmt.pattern):
				self._error("refutable pattern in `for` loop binding", stmt.pattern.loc)
			self.expr(stmt.iterable, ctx)
			self.block(stmt.body, replace(ctx, in_loop=True))
		elif isinstance(stmt, ast.BlockStmt):
			self.block(stmt.block, ctx)
		elif isinstance(stmt, ast.MatchStmt):
			self.expr(stmt.subject, ctx)
			for arm in stmt.arms:
				if arm.guard is not None:
					self.expr(arm.guard, ctx)
					for sub in ast.walk_expr(arm.guard):
						if isinstance(sub, (ast.YieldExpr, ast.TryExpr)):
							self._error("match guards cannot suspend or propagate errors", sub.loc)
				self.block(arm.body, ctx)
		elif isinstance(stmt, ast.FnItem):
			self.block(stmt.body, _Context(in_loop=False, in_nested_fn=True))
		else:
			raise NotImplementedError(f"structure check does not handle {type(stmt).__name__}")

	def condition(self, cond: ast.Condition, ctx: _Context) -> None:
		if isinstance(cond, ast.LetCondition):
			self.expr(cond.value, ctx)
		else:
			self.expr(cond, ctx)

	def expr(self, expr: ast.Expr, ctx: _Context) -> None:
		for sub in ast.walk_expr(expr):
			if ctx.in_prelude and isinstance(sub, (ast.YieldExpr, ast.TryExpr, ast.AwaitExpr)):
				what = {ast.YieldExpr: "`yield`", ast.TryExpr: "`?`", ast.AwaitExpr: "`.await`"}[type(sub)]
				self._error(
					f"{what} outside of the `gen` block",
					sub.loc,
					notes=["statements before the `gen` block run eagerly when the function is called"],
				)
			elif isinstance(sub, ast.YieldExpr) and ctx.in_nested_fn:
				self._error(
					"`yield` inside a nested `fn` item",
					sub.loc,
					notes=["only the body of the iterator item itself can suspend"],
				)
			elif isinstance(sub, ast.AwaitExpr):
				if ctx.in_nested_fn:
					self._error("`.await` inside a nested `fn` item", sub.loc)
				elif not self.defn.is_async:
					self._error(
						"`.await` is only allowed inside `async` iterator items",
						sub.loc,
						notes=[f"declare the item as `async {self.defn.syntax} {self.defn.name}`"],
					)
			elif isinstance(sub, ast.Name) and sub.ident == "self":
				if ctx.in_nested_fn or self.defn.receiver is None:
					self._error("`self` is not available here", sub.loc, notes=["add a `self` receiver as the first parameter"])


def check_structure(defn: ast.Definition, file: Optional[str] = None) -> List[Diagnostic]:
	checker = _StructureChecker(defn, file)
	checker.check_attributes()
	for stmt in defn.prelude:
		checker.stmt(stmt, _Context(in_prelude=True))
	checker.block(defn.body, _Context())
	return checker.diagnostics


__all__ = ["check_structure"]
