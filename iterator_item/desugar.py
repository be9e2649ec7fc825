# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Control-flow desugaring for iterator bodies.

Pipeline placement:
  source → Definition → [validate] → [this pass] → emit

Canonical expansions:

    yield E            prefix(E); suspend E'          (value: ())

    E?                 let __tryN = E';
                       if is_residual(__tryN) {
                           suspend residual(__tryN);  // only when the element type is Result/Option
                           terminate;
                       }
                                                      (value: output(__tryN))

    return;            terminate                      (top level only)

    P.take()           let __vN = P; P = None;        (value: __vN)
    P.replace(E)       let __vN = P; P = Some(E');    (value: __vN)

Inside nested `fn` items `E?` returns the residual instead, and `return`
stays a plain return.

Notes:
  * Operands are evaluated once and in source order. When a later operand
    needs prefix statements, earlier operands are spilled into `__vN`
    temporaries first, unless they are literals, paths or names that are never
    bound `mut`.
  * `&&` / `||` only run the right operand's prefix when the left operand does
    not decide the result.
  * A `while` condition with a prefix becomes `loop { prefix; if !cond { break } body }`.
  * The statements before a `gen` block are rewritten like a nested `fn` body.
  * The pass is purely structural: no type information is needed beyond the
    element type's residual mode, and the input Definition is never mutated.
"""

from __future__ import annotations

from dataclasses import fields, is_dataclass, replace
from typing import List, Optional, Sequence, Set, Tuple

from iterator_item.checker.types import definition_mode
from iterator_item.parser import ast


def _unit(loc: ast.Located) -> ast.Literal:
	return ast.Literal(loc=loc, value=None, kind="unit")


def _is_unit(expr: ast.Expr) -> bool:
	return isinstance(expr, ast.Literal) and expr.kind == "unit"


def _is_place(expr: ast.Expr) -> bool:
	if isinstance(expr, ast.Name):
		return expr.ident != "None"
	if isinstance(expr, (ast.Field, ast.TupleField)):
		return _is_place(expr.value)
	if isinstance(expr, ast.Index):
		return _is_place(expr.value) and isinstance(expr.index, (ast.Literal, ast.Name))
	return False


def _is_option_swap(expr: ast.MethodCall) -> bool:
	return (expr.method == "take" and not expr.args) or (expr.method == "replace" and len(expr.args) == 1)


def _mutable_names(defn: ast.Definition) -> Set[str]:
	"""Every name the item binds `mut` anywhere, plus `self` for `mut` receivers."""
	names = {p.name for p in defn.params if p.mutable or p.receiver == "&mut self"}
	stack: list = [defn.prelude, defn.body]
	while stack:
		node = stack.pop()
		if isinstance(node, list):
			stack.extend(node)
		elif isinstance(node, ast.BindPattern):
			if node.mutable:
				names.add(node.name)
		elif is_dataclass(node) and not isinstance(node, (ast.Located, ast.TypeExpr)):
			stack.extend(getattr(node, f.name) for f in fields(node))
	return names


class IteratorDesugarer:
	"""
	Rewrite `yield` / `?` / top-level `return` into SuspendStmt, TerminateStmt
	and runtime helper calls.

	All other nodes are rebuilt with their children rewritten.
	"""

	def __init__(self, mode: Optional[str] = None) -> None:
		self._mode = mode
		self._temp_counter = 0
		self._fn_depth = 0
		self._mutable: Set[str] = set()

	def _fresh(self, prefix: str) -> str:
		self._temp_counter += 1
		return f"{prefix}{self._temp_counter}"

	def _is_trivial(self, expr: ast.Expr) -> bool:
		"""Operands that cannot change meaning when evaluated later."""
		if isinstance(expr, ast.Name):
			return expr.ident not in self._mutable
		return isinstance(expr, (ast.Literal, ast.Path))

	def _temp(self, prefix: str, value: ast.Expr) -> Tuple[ast.LetStmt, ast.Name]:
		name = self._fresh(prefix)
		let = ast.LetStmt(
			loc=value.loc,
			pattern=ast.BindPattern(loc=value.loc, name=name, mutable=True),
			type_expr=None,
			value=value,
		)
		return let, ast.Name(loc=value.loc, ident=name)

	# Public entry points ----------------------------------------------

	def rewrite_definition(self, defn: ast.Definition) -> ast.Definition:
		self._mutable = _mutable_names(defn)
		self._fn_depth += 1
		try:
			prelude = self.rewrite_block(ast.Block(statements=defn.prelude, loc=defn.loc)).statements
		finally:
			self._fn_depth -= 1
		return replace(defn, prelude=prelude, body=self.rewrite_block(defn.body))

	def rewrite_block(self, block: ast.Block) -> ast.Block:
		new_stmts: List[ast.Stmt] = []
		for stmt in block.statements:
			new_stmts.extend(self._rewrite_stmt(stmt))
		tail: Optional[ast.Expr] = None
		if block.tail is not None:
			prefix, tail = self._rewrite_expr(block.tail)
			new_stmts.extend(prefix)
			if _is_unit(tail):
				tail = None
		return ast.Block(statements=new_stmts, loc=block.loc, tail=tail)

	# Statement rewriting ----------------------------------------------

	def _rewrite_stmt(self, stmt: ast.Stmt) -> List[ast.Stmt]:
		if isinstance(stmt, ast.LetStmt):
			prefix, value = self._rewrite_expr(stmt.value)
			else_block = self.rewrite_block(stmt.else_block) if stmt.else_block is not None else None
			return prefix + [replace(stmt, value=value, else_block=else_block)]
		if isinstance(stmt, ast.AssignStmt):
			prefix_value, value = self._rewrite_expr(stmt.value)
			prefix_target, target = self._rewrite_expr(stmt.target)
			stmts = list(prefix_value)
			if prefix_target and not self._is_trivial(value):
				spill, value = self._temp("__v", value)
				stmts.append(spill)
			return stmts + prefix_target + [replace(stmt, target=target, value=value)]
		if isinstance(stmt, ast.ExprStmt):
			prefix, value = self._rewrite_expr(stmt.value)
			if _is_unit(value):
				return prefix
			return prefix + [replace(stmt, value=value)]
		if isinstance(stmt, ast.ReturnStmt):
			prefix: List[ast.Stmt] = []
			value = stmt.value
			if value is not None:
				prefix, value = self._rewrite_expr(value)
			if self._fn_depth == 0:
				# Only `()` survives validation here; it still runs for its prefix.
				return prefix + [ast.TerminateStmt(loc=stmt.loc)]
			return prefix + [replace(stmt, value=value)]
		if isinstance(stmt, ast.IfStmt):
			prefix, cond = self._rewrite_condition(stmt.condition)
			then_block = self.rewrite_block(stmt.then_block)
			else_block = self.rewrite_block(stmt.else_block) if stmt.else_block is not None else None
			return prefix + [replace(stmt, condition=cond, then_block=then_block, else_block=else_block)]
		if isinstance(stmt, ast.WhileStmt):
			return [self._rewrite_while(stmt)]
		if isinstance(stmt, ast.LoopStmt):
			return [replace(stmt, body=self.rewrite_block(stmt.body))]
		if isinstance(stmt, ast.ForStmt):
			prefix, iterable = self._rewrite_expr(stmt.iterable)
			return prefix + [replace(stmt, iterable=iterable, body=self.rewrite_block(stmt.body))]
		if isinstance(stmt, ast.BlockStmt):
			return [replace(stmt, block=self.rewrite_block(stmt.block))]
		if isinstance(stmt, ast.FnItem):
			self._fn_depth += 1
			try:
				body = self.rewrite_block(stmt.body)
			finally:
				self._fn_depth -= 1
			return [replace(stmt, body=body)]
		if isinstance(stmt, ast.MatchStmt):
			prefix, subject = self._rewrite_expr(stmt.subject)
			arms = [replace(arm, guard=self._rewrite_guard(arm.guard), body=self.rewrite_block(arm.body)) for arm in stmt.arms]
			return prefix + [replace(stmt, subject=subject, arms=arms)]
		if isinstance(stmt, (ast.BreakStmt, ast.ContinueStmt, ast.SuspendStmt, ast.TerminateStmt)):
			return [stmt]
		raise NotImplementedError(f"IteratorDesugarer does not handle stmt {type(stmt).__name__}")

	def _rewrite_condition(self, cond: ast.Condition) -> Tuple[List[ast.Stmt], ast.Condition]:
		if isinstance(cond, ast.LetCondition):
			prefix, value = self._rewrite_expr(cond.value)
			return prefix, replace(cond, value=value)
		return self._rewrite_expr(cond)

	def _rewrite_guard(self, guard: Optional[ast.Expr]) -> Optional[ast.Expr]:
		if guard is None:
			return None
		prefix, value = self._rewrite_expr(guard)
		# A guard only runs once its pattern matched, so it cannot take a prefix.
		return guard if prefix else value

	def _rewrite_while(self, stmt: ast.WhileStmt) -> ast.Stmt:
		prefix, cond = self._rewrite_condition(stmt.condition)
		body = self.rewrite_block(stmt.body)
		if not prefix:
			return replace(stmt, condition=cond, body=body)
		exit_block = ast.Block(statements=[ast.BreakStmt(loc=stmt.loc)], loc=stmt.loc)
		if isinstance(cond, ast.LetCondition):
			guard = ast.IfStmt(loc=stmt.loc, condition=cond, then_block=body, else_block=exit_block)
			loop_body = ast.Block(statements=prefix + [guard], loc=body.loc)
		else:
			negated = ast.Unary(loc=cond.loc, op="!", operand=cond)
			guard = ast.IfStmt(loc=stmt.loc, condition=negated, then_block=exit_block)
			loop_body = ast.Block(statements=prefix + [guard] + body.statements, loc=body.loc, tail=body.tail)
		return ast.LoopStmt(loc=stmt.loc, body=loop_body)

	# Expression rewriting ---------------------------------------------

	def _rewrite_expr(self, expr: ast.Expr) -> Tuple[List[ast.Stmt], ast.Expr]:
		"""Return (prefix_stmts, rewritten_expr) for a given expression."""
		if isinstance(expr, ast.YieldExpr):
			return self._expand_yield(expr)
		if isinstance(expr, ast.TryExpr):
			return self._expand_try(expr)
		if isinstance(expr, (ast.Literal, ast.Name, ast.Path)):
			return [], expr
		if isinstance(expr, ast.Binary) and expr.op in ("&&", "||"):
			return self._rewrite_short_circuit(expr)
		if isinstance(expr, ast.MethodCall) and _is_option_swap(expr):
			return self._expand_option_swap(expr)
		prefix, children = self._rewrite_operands(ast.child_exprs(expr))
		return prefix, _rebuild(expr, children)

	def _rewrite_operands(self, operands: Sequence[ast.Expr]) -> Tuple[List[ast.Stmt], List[ast.Expr]]:
		results = [self._rewrite_expr(e) for e in operands]
		last_prefixed = max((idx for idx, (pfx, _) in enumerate(results) if pfx), default=-1)
		stmts: List[ast.Stmt] = []
		out: List[ast.Expr] = []
		for idx, (pfx, value) in enumerate(results):
			stmts.extend(pfx)
			if idx < last_prefixed and not self._is_trivial(value):
				spill, value = self._temp("__v", value)
				stmts.append(spill)
			out.append(value)
		return stmts, out

	def _expand_yield(self, expr: ast.YieldExpr) -> Tuple[List[ast.Stmt], ast.Expr]:
		prefix: List[ast.Stmt] = []
		value: ast.Expr = _unit(expr.loc)
		if expr.value is not None:
			prefix, value = self._rewrite_expr(expr.value)
		return prefix + [ast.SuspendStmt(loc=expr.loc, value=value)], _unit(expr.loc)

	def _expand_try(self, expr: ast.TryExpr) -> Tuple[List[ast.Stmt], ast.Expr]:
		prefix, operand = self._rewrite_expr(expr.expr)
		let, tmp = self._temp("__try", operand)
		residual = ast.RuntimeCall(loc=expr.loc, helper="residual", args=[tmp])
		if self._fn_depth > 0:
			on_residual: List[ast.Stmt] = [ast.ReturnStmt(loc=expr.loc, value=residual)]
		elif self._mode is not None:
			on_residual = [ast.SuspendStmt(loc=expr.loc, value=residual), ast.TerminateStmt(loc=expr.loc)]
		else:
			on_residual = [ast.TerminateStmt(loc=expr.loc)]
		check = ast.IfStmt(
			loc=expr.loc,
			condition=ast.RuntimeCall(loc=expr.loc, helper="is_residual", args=[tmp]),
			then_block=ast.Block(statements=on_residual, loc=expr.loc),
		)
		return prefix + [let, check], ast.RuntimeCall(loc=expr.loc, helper="output", args=[tmp])

	def _expand_option_swap(self, expr: ast.MethodCall) -> Tuple[List[ast.Stmt], ast.Expr]:
		prefix, place = self._rewrite_expr(expr.receiver)
		args: List[ast.Expr] = []
		if expr.args:
			arg_prefix, arg = self._rewrite_expr(expr.args[0])
			prefix = prefix + arg_prefix
			args = [arg]
		if not _is_place(place):
			return prefix, replace(expr, receiver=place, args=args)
		let, tmp = self._temp("__v", place)
		if expr.method == "take":
			new_value: ast.Expr = ast.Name(loc=expr.loc, ident="None")
		else:
			new_value = ast.Call(loc=expr.loc, func=ast.Name(loc=expr.loc, ident="Some"), args=args)
		store = ast.AssignStmt(loc=expr.loc, target=place, value=new_value)
		return prefix + [let, store], tmp

	def _rewrite_short_circuit(self, expr: ast.Binary) -> Tuple[List[ast.Stmt], ast.Expr]:
		prefix_left, left = self._rewrite_expr(expr.left)
		prefix_right, right = self._rewrite_expr(expr.right)
		if not prefix_right:
			return prefix_left, replace(expr, left=left, right=right)
		let, tmp = self._temp("__cond", left)
		cond: ast.Expr = tmp if expr.op == "&&" else ast.Unary(loc=expr.loc, op="!", operand=tmp)
		assign = ast.AssignStmt(loc=expr.loc, target=tmp, value=right)
		evaluate_right = ast.IfStmt(
			loc=expr.loc,
			condition=cond,
			then_block=ast.Block(statements=prefix_right + [assign], loc=expr.loc),
		)
		return prefix_left + [let, evaluate_right], tmp


def _rebuild(expr: ast.Expr, children: List[ast.Expr]) -> ast.Expr:
	if isinstance(expr, ast.Call):
		return replace(expr, func=children[0], args=children[1:])
	if isinstance(expr, ast.MethodCall):
		return replace(expr, receiver=children[0], args=children[1:])
	if isinstance(expr, (ast.Field, ast.TupleField, ast.Borrow, ast.AwaitExpr)):
		return replace(expr, value=children[0])
	if isinstance(expr, ast.Index):
		return replace(expr, value=children[0], index=children[1])
	if isinstance(expr, ast.Unary):
		return replace(expr, operand=children[0])
	if isinstance(expr, ast.Binary):
		return replace(expr, left=children[0], right=children[1])
	if isinstance(expr, ast.Range):
		return replace(expr, start=children[0], end=children[1])
	if isinstance(expr, (ast.TupleLit, ast.ArrayLit)):
		return replace(expr, elements=children)
	if isinstance(expr, (ast.MacroCall, ast.RuntimeCall)):
		return replace(expr, args=children)
	raise NotImplementedError(f"IteratorDesugarer does not handle expr {type(expr).__name__}")


def desugar_definition(defn: ast.Definition) -> ast.Definition:
	"""Desugar a validated Definition into suspend/terminate form."""
	return IteratorDesugarer(definition_mode(defn)).rewrite_definition(defn)


__all__ = ["IteratorDesugarer", "desugar_definition"]
