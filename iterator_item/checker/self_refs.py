# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Escaping self-reference check.

A suspended computation keeps its locals alive between resumptions. A binding
that holds a borrow of another local of the same computation would point into
the computation's own frame, which is not allowed: we reject every program
where such a binding is *used after a suspension point* that follows the
borrow.

The analysis is a conservative, flow-insensitive walk in program order:

- every event (binding, borrow, `yield`, use) gets a position;
- loops record their position range, so a use inside a loop that also
  contains a `yield` is treated as happening after that `yield` (on the next
  iteration) when the borrowing binding outlives one iteration;
- a `for` loop whose iterable borrows a local keeps that borrow alive inside
  the hidden iterator, so yielding in its body is rejected outright.

Borrows are taken by `&x` / `&mut x`, by the borrowing std methods below, by
containers/aliases of borrowing values and by storing methods (`push(&x)`)
that make the receiver hold the borrow. A call result may carry any borrow
passed in as an argument, unless the callee is a nested `fn` whose return
type holds no reference. Unknown methods may also return a borrow of their
receiver. A `let` annotated with an owned type holds no borrow. Temporary
borrows that are only passed to a call and dropped are fine. Parameters of
reference type and `&self` receivers are owned by the caller, so borrowing
through them is not a self-reference.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Optional, Set, Tuple

from iterator_item.core.diagnostics import Diagnostic, ErrorKind
from iterator_item.core.span import Span
from iterator_item.parser import ast

from .types import ExprTyper

# Methods whose result borrows from the receiver.
BORROWING_METHODS = frozenset(
	{
		"iter",
		"iter_mut",
		"chars",
		"char_indices",
		"bytes",
		"lines",
		"split",
		"split_whitespace",
		"as_str",
		"as_slice",
		"as_ref",
		"as_mut",
		"windows",
		"chunks",
		"keys",
		"values",
		"values_mut",
		"drain",
		"get",
		"get_mut",
		"first",
		"last",
		"peek",
		"borrow",
		"borrow_mut",
	}
)
# Methods whose result carries whatever the receiver (and arguments) already
# borrow, without borrowing the receiver itself.
FORWARDING_METHODS = frozenset(
	{
		"next",
		"next_back",
		"take",
		"replace",
		"unwrap",
		"unwrap_or",
		"unwrap_or_default",
		"expect",
		"ok",
		"err",
		"pop",
		"pop_front",
		"pop_back",
		"into_iter",
		"map",
		"filter",
		"filter_map",
		"flat_map",
		"flatten",
		"rev",
		"enumerate",
		"zip",
		"chain",
		"skip",
		"skip_while",
		"take_while",
		"step_by",
		"peekable",
		"cloned",
		"copied",
		"find",
		"nth",
		"min",
		"max",
	}
)
# Methods that store their argument inside the receiver.
STORING_METHODS = frozenset(
	{"push", "push_back", "push_front", "insert", "extend", "append", "add", "set", "replace", "put", "get_or_insert"}
)
# Methods whose result never borrows, even from a borrowing receiver.
OWNING_METHODS = frozenset(
	{
		"clone",
		"to_string",
		"to_owned",
		"to_vec",
		"collect",
		"count",
		"sum",
		"product",
		"len",
		"is_empty",
		"is_some",
		"is_none",
		"is_ok",
		"is_err",
		"contains",
		"starts_with",
		"ends_with",
		"eq",
		"ne",
		"abs",
		"pow",
		"powi",
		"powf",
		"sqrt",
		"signum",
		"checked_add",
		"checked_sub",
		"checked_mul",
		"checked_div",
		"wrapping_add",
		"wrapping_sub",
		"wrapping_mul",
		"saturating_add",
		"saturating_sub",
		"to_uppercase",
		"to_lowercase",
		"to_ascii_uppercase",
		"to_ascii_lowercase",
		"to_digit",
		"is_alphabetic",
		"is_numeric",
		"is_whitespace",
		"is_ascii_digit",
		"parse",
		"position",
		"any",
		"all",
		"cmp",
		"partial_cmp",
	}
)


@dataclass
class _Binding:
	id: int
	name: str
	pos: int
	loc: ast.Located
	# False for reference-typed params/lets and `&self`: borrowing through them is fine.
	owned: bool = True
	# (position, lender binding ids, borrow location)
	taints: List[Tuple[int, FrozenSet[int], ast.Located]] = field(default_factory=list)

	def lenders(self) -> FrozenSet[int]:
		out: Set[int] = set()
		for _, ids, _ in self.taints:
			out |= ids
		return frozenset(out)


@dataclass(frozen=True)
class _Use:
	binding: _Binding
	pos: int
	loops: Tuple[int, ...]
	loc: ast.Located


@dataclass(frozen=True)
class _Yield:
	pos: int
	loc: ast.Located


class _Analyzer:
	def __init__(self, defn: ast.Definition, file: Optional[str]) -> None:
		self.defn = defn
		self.file = file
		self.pos = 0
		self.bindings: List[_Binding] = []
		self.scopes: List[Dict[str, _Binding]] = [{}]
		self.loop_stack: List[int] = []
		self.loop_ranges: Dict[int, List[int]] = {}
		self.yields: List[_Yield] = []
		self.uses: List[_Use] = []
		self.diagnostics: List[Diagnostic] = []
		self.fn_returns = ExprTyper.for_definition(defn).fn_returns

	# Positions / scopes -----------------------------------------------

	def _tick(self) -> int:
		self.pos += 1
		return self.pos

	def _bind(self, name: str, loc: ast.Located, owned: bool = True) -> _Binding:
		binding = _Binding(id=len(self.bindings), name=name, pos=self._tick(), loc=loc, owned=owned)
		self.bindings.append(binding)
		self.scopes[-1][name] = binding
		return binding

	def _lookup(self, name: str) -> Optional[_Binding]:
		for scope in reversed(self.scopes):
			if name in scope:
				return scope[name]
		return None

	def _bind_pattern(self, pattern: ast.Pattern, lenders: FrozenSet[int], loc: ast.Located, owned: bool = True) -> None:
		for bind in ast.pattern_bindings(pattern):
			binding = self._bind(bind.name, bind.loc, owned=owned)
			if lenders:
				binding.taints.append((binding.pos, lenders, loc))

	# Borrow computation -----------------------------------------------

	def _root(self, expr: ast.Expr) -> Optional[_Binding]:
		if isinstance(expr, ast.Name):
			return self._lookup(expr.ident)
		if isinstance(expr, (ast.Field, ast.TupleField, ast.Index)):
			return self._root(expr.value)
		if isinstance(expr, ast.Unary) and expr.op == "*":
			return self._root(expr.operand)
		return None

	def _borrow_of_place(self, place: ast.Expr) -> FrozenSet[int]:
		root = self._root(place)
		if root is None:
			return frozenset()
		out = set(root.lenders())
		if root.owned:
			out.add(root.id)
		return frozenset(out)

	def borrows(self, expr: Optional[ast.Expr]) -> FrozenSet[int]:
		"""Locals whose storage the value of `expr` may point into."""
		if expr is None:
			return frozenset()
		if isinstance(expr, ast.Borrow):
			return self._borrow_of_place(expr.value)
		if isinstance(expr, ast.Name):
			binding = self._lookup(expr.ident)
			return binding.lenders() if binding is not None else frozenset()
		if isinstance(expr, (ast.Field, ast.TupleField, ast.Index)):
			root = self._root(expr)
			return root.lenders() if root is not None else frozenset()
		if isinstance(expr, ast.MethodCall):
			if expr.method in BORROWING_METHODS:
				root = self._root(expr.receiver)
				if root is not None:
					return self._borrow_of_place(expr.receiver)
				return self.borrows(expr.receiver)
			if expr.method in OWNING_METHODS:
				return frozenset()
			args = _union(self.borrows(a) for a in expr.args)
			if expr.method in FORWARDING_METHODS or self._root(expr.receiver) is None:
				return self.borrows(expr.receiver) | args
			return self._borrow_of_place(expr.receiver) | args
		if isinstance(expr, (ast.TupleLit, ast.ArrayLit)):
			return _union(self.borrows(e) for e in expr.elements)
		if isinstance(expr, ast.Call):
			func = expr.func
			if isinstance(func, ast.Name) and func.ident in self.fn_returns and not may_borrow(self.fn_returns[func.ident]):
				return frozenset()
			return _union(self.borrows(a) for a in expr.args)
		if isinstance(expr, ast.TryExpr):
			return self.borrows(expr.expr)
		return frozenset()

	# Walk -------------------------------------------------------------

	def run(self) -> List[Diagnostic]:
		for param in self.defn.params:
			if param.receiver is not None:
				self._bind("self", param.loc, owned=param.receiver == "self")
			else:
				owned = param.type_expr is None or param.type_expr.name not in ("&", "&mut")
				self._bind(param.name, param.loc, owned=owned)
		for stmt in self.defn.prelude:
			self.stmt(stmt)
		self.block(self.defn.body)
		self._report()
		return self.diagnostics

	def block(self, block: ast.Block) -> None:
		self.scopes.append({})
		for stmt in block.statements:
			self.stmt(stmt)
		if block.tail is not None:
			self.expr(block.tail)
		self.scopes.pop()

	def _loop(self, body: ast.Block, head: Optional[ast.Condition] = None, pattern: Optional[ast.Pattern] = None, lenders: FrozenSet[int] = frozenset(), loc: Optional[ast.Located] = None) -> None:
		loop_id = len(self.loop_ranges)
		self.loop_ranges[loop_id] = [self._tick(), 0]
		self.loop_stack.append(loop_id)
		self.scopes.append({})
		if head is not None:
			self.condition(head)
		if pattern is not None:
			self._bind_pattern(pattern, lenders, loc or body.loc)
		self.block(body)
		self.scopes.pop()
		self.loop_stack.pop()
		self.loop_ranges[loop_id][1] = self._tick()

	def stmt(self, stmt: ast.Stmt) -> None:
		if isinstance(stmt, ast.LetStmt):
			self.expr(stmt.value)
			lenders = self.borrows(stmt.value)
			if stmt.else_block is not None:
				self.block(stmt.else_block)
			owned = stmt.type_expr is None or stmt.type_expr.name not in ("&", "&mut")
			if stmt.type_expr is not None and not may_borrow(stmt.type_expr):
				lenders = frozenset()
			self._bind_pattern(stmt.pattern, lenders, stmt.value.loc, owned=owned)
		elif isinstance(stmt, ast.AssignStmt):
			self.expr(stmt.value)
			if not isinstance(stmt.target, ast.Name):
				self.expr(stmt.target)
			root = self._root(stmt.target)
			lenders = self.borrows(stmt.value)
			if root is not None:
				lenders = lenders - {root.id}
			if root is not None and lenders:
				root.taints.append((self._tick(), lenders, stmt.value.loc))
		elif isinstance(stmt, ast.ExprStmt):
			self.expr(stmt.value)
		elif isinstance(stmt, ast.ReturnStmt):
			if stmt.value is not None:
				self.expr(stmt.value)
		elif isinstance(stmt, ast.IfStmt):
			self.scopes.append({})
			self.condition(stmt.condition)
			self.block(stmt.then_block)
			self.scopes.pop()
			if stmt.else_block is not None:
				self.block(stmt.else_block)
		elif isinstance(stmt, ast.WhileStmt):
			self._loop(stmt.body, head=stmt.condition)
		elif isinstance(stmt, ast.LoopStmt):
			self._loop(stmt.body)
		elif isinstance(stmt, ast.ForStmt):
			self.expr(stmt.iterable)
			lenders = self.borrows(stmt.iterable)
			if lenders and _contains_yield(stmt.body):
				self._for_error(stmt, lenders)
				lenders = frozenset()
			self._loop(stmt.body, pattern=stmt.pattern, lenders=lenders, loc=stmt.iterable.loc)
		elif isinstance(stmt, ast.BlockStmt):
			self.block(stmt.block)
		elif isinstance(stmt, ast.MatchStmt):
			self.expr(stmt.subject)
			lenders = self.borrows(stmt.subject)
			for arm in stmt.arms:
				self.scopes.append({})
				self._bind_pattern(arm.pattern, lenders, stmt.subject.loc)
				if arm.guard is not None:
					self.expr(arm.guard)
				self.block(arm.body)
				self.scopes.pop()
		elif isinstance(stmt, (ast.BreakStmt, ast.ContinueStmt, ast.FnItem)):
			pass
		else:
			raise NotImplementedError(f"self-reference check does not handle {type(stmt).__name__}")

	def condition(self, cond: ast.Condition) -> None:
		if isinstance(cond, ast.LetCondition):
			self.expr(cond.value)
			self._bind_pattern(cond.pattern, self.borrows(cond.value), cond.value.loc)
		else:
			self.expr(cond)

	def expr(self, expr: ast.Expr) -> None:
		# Operands are evaluated before the operation itself.
		for child in ast.child_exprs(expr):
			self.expr(child)
		if isinstance(expr, ast.Name):
			binding = self._lookup(expr.ident)
			if binding is not None:
				self.uses.append(_Use(binding, self._tick(), tuple(self.loop_stack), expr.loc))
		elif isinstance(expr, ast.YieldExpr):
			self.yields.append(_Yield(self._tick(), expr.loc))
		elif isinstance(expr, ast.MethodCall) and expr.method in STORING_METHODS:
			root = self._root(expr.receiver)
			lenders = _union(self.borrows(a) for a in expr.args)
			if root is not None and lenders:
				root.taints.append((self._tick(), lenders, expr.loc))

	# Reporting --------------------------------------------------------

	def _for_error(self, stmt: ast.ForStmt, lenders: FrozenSet[int]) -> None:
		names = ", ".join(f"`{self.bindings[i].name}`" for i in sorted(lenders))
		self.diagnostics.append(
			Diagnostic(
				message=f"`for` loop iterator borrows {names} across a `yield` in the loop body",
				code=ErrorKind.ESCAPING_SELF_REFERENCE,
				phase="validate",
				span=Span.from_loc(stmt.iterable.loc, file=self.file),
				notes=[
					"the loop keeps the iterator alive while the computation is suspended",
					"iterate over an owned value (e.g. `.clone().into_iter()` or indices) instead",
				],
			)
		)

	def _violating_yield(self, use: _Use, taint_pos: int) -> Optional[_Yield]:
		for y in self.yields:
			if taint_pos < y.pos < use.pos:
				return y
		for loop_id in use.loops:
			start, end = self.loop_ranges[loop_id]
			if use.binding.pos > start or taint_pos > end:
				continue
			for y in self.yields:
				if start < y.pos < end:
					return y
		return None

	def _report(self) -> None:
		reported: Set[int] = set()
		for use in self.uses:
			binding = use.binding
			if binding.id in reported:
				continue
			for taint_pos, lenders, borrow_loc in binding.taints:
				y = self._violating_yield(use, taint_pos)
				if y is None:
					continue
				reported.add(binding.id)
				names = ", ".join(f"`{self.bindings[i].name}`" for i in sorted(lenders))
				self.diagnostics.append(
					Diagnostic(
						message=f"`{binding.name}` holds a borrow of {names} and is used after a `yield`",
						code=ErrorKind.ESCAPING_SELF_REFERENCE,
						phase="validate",
						span=Span.from_loc(use.loc, file=self.file),
						notes=[
							f"borrow taken at line {borrow_loc.line}, column {borrow_loc.column}",
							f"the computation suspends at line {y.loc.line}, column {y.loc.column}",
							"a suspended computation cannot hold references into its own locals",
						],
					)
				)
				break


def _union(sets) -> FrozenSet[int]:
	out: Set[int] = set()
	for s in sets:
		out |= s
	return frozenset(out)


def may_borrow(ty: ast.TypeExpr) -> bool:
	"""True unless `ty` is spelled out as an owned type (no `&`, `impl` or `_` inside)."""
	if ty.name in ("&", "&mut", "impl", "_"):
		return True
	return any(may_borrow(a) for a in ty.args) or any(may_borrow(b.type_expr) for b in ty.bindings)


def _contains_yield(block: ast.Block) -> bool:
	for stmt in block.statements:
		if _stmt_yields(stmt):
			return True
	return block.tail is not None and _expr_yields(block.tail)


def _expr_yields(expr: ast.Expr) -> bool:
	return any(isinstance(sub, ast.YieldExpr) for sub in ast.walk_expr(expr))


def _stmt_yields(stmt: ast.Stmt) -> bool:
	if isinstance(stmt, ast.LetStmt):
		return _expr_yields(stmt.value) or (stmt.else_block is not None and _contains_yield(stmt.else_block))
	if isinstance(stmt, ast.AssignStmt):
		return _expr_yields(stmt.target) or _expr_yields(stmt.value)
	if isinstance(stmt, ast.ExprStmt):
		return _expr_yields(stmt.value)
	if isinstance(stmt, ast.ReturnStmt):
		return stmt.value is not None and _expr_yields(stmt.value)
	if isinstance(stmt, (ast.IfStmt, ast.WhileStmt)):
		cond = stmt.condition
		head = cond.value if isinstance(cond, ast.LetCondition) else cond
		if _expr_yields(head):
			return True
		if isinstance(stmt, ast.IfStmt):
			return _contains_yield(stmt.then_block) or (stmt.else_block is not None and _contains_yield(stmt.else_block))
		return _contains_yield(stmt.body)
	if isinstance(stmt, ast.LoopStmt):
		return _contains_yield(stmt.body)
	if isinstance(stmt, ast.ForStmt):
		return _expr_yields(stmt.iterable) or _contains_yield(stmt.body)
	if isinstance(stmt, ast.BlockStmt):
		return _contains_yield(stmt.block)
	if isinstance(stmt, ast.MatchStmt):
		if _expr_yields(stmt.subject):
			return True
		return any((arm.guard is not None and _expr_yields(arm.guard)) or _contains_yield(arm.body) for arm in stmt.arms)
	return False


def check_self_references(defn: ast.Definition, file: Optional[str] = None) -> List[Diagnostic]:
	return _Analyzer(defn, file).run()


__all__ = ["BORROWING_METHODS", "FORWARDING_METHODS", "OWNING_METHODS", "STORING_METHODS", "check_self_references", "may_borrow"]
