# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Best-effort local type inference for iterator bodies.

The validator only needs types to compare `yield` operands with each other and
with the declared element type, so inference is shallow: literals, params,
annotated/inferred `let`s, loop variables over well-known iterables, the
outcome constructors and a handful of std methods. Anything else is `_`
(unknown), and unknown types unify with everything.
"""

from __future__ import annotations

from typing import Dict, List, Optional

from iterator_item.parser import ast

INT_TYPES = frozenset({"i8", "i16", "i32", "i64", "i128", "isize", "u8", "u16", "u32", "u64", "u128", "usize"})
FLOAT_TYPES = frozenset({"f32", "f64"})

# Type of an unsuffixed literal; unifies with any concrete type of its class.
INT_LITERAL = ast.TypeExpr("{integer}")
FLOAT_LITERAL = ast.TypeExpr("{float}")

BOOL = ast.TypeExpr("bool")
CHAR = ast.TypeExpr("char")
STRING = ast.TypeExpr("String")
STR_REF = ast.TypeExpr("&", [ast.TypeExpr("str")])
USIZE = ast.TypeExpr("usize")

_STD_PREFIXES = ("std::", "core::", "alloc::")
# Methods whose result type is known regardless of the receiver.
_FIXED_METHOD_TYPES = {
	"len": USIZE,
	"count": USIZE,
	"is_empty": BOOL,
	"is_some": BOOL,
	"is_none": BOOL,
	"is_ok": BOOL,
	"is_err": BOOL,
	"contains": BOOL,
	"starts_with": BOOL,
	"ends_with": BOOL,
	"eq": BOOL,
	"ne": BOOL,
	"to_string": STRING,
	"to_uppercase": STRING,
	"to_lowercase": STRING,
	"chars": ast.TypeExpr("impl", [ast.TypeExpr("Iterator", bindings=[ast.AssocType("Item", CHAR)])]),
}


def canonical_name(name: str) -> str:
	for prefix in _STD_PREFIXES:
		if name.startswith(prefix):
			return name.rsplit("::", 1)[-1]
	return name


def is_unknown(ty: Optional[ast.TypeExpr]) -> bool:
	return ty is None or ty.name == "_"


def residual_mode(yielded: ast.TypeExpr) -> Optional[str]:
	"""
	"Result"/"Option" when `?` should yield its residual before finishing.

	Only the single-segment spellings opt in; anything else makes `?` a plain
	early exit.
	"""
	if yielded.name in ("Result", "Option"):
		return yielded.name
	return None


def definition_mode(defn: ast.Definition) -> Optional[str]:
	"""Residual mode of an item. Inside a `gen` block `?` is always a plain early exit."""
	if defn.syntax == "gen block":
		return None
	return residual_mode(defn.yielded_type)


def unify(a: ast.TypeExpr, b: ast.TypeExpr) -> Optional[ast.TypeExpr]:
	"""Most specific common type of `a` and `b`, or None when they conflict."""
	if a.name == "_":
		return b
	if b.name == "_":
		return a
	for literal, family in ((INT_LITERAL.name, INT_TYPES), (FLOAT_LITERAL.name, FLOAT_TYPES)):
		if a.name == literal:
			return b if b.name == literal or b.name in family else None
		if b.name == literal:
			return a if a.name in family else None
	if canonical_name(a.name) != canonical_name(b.name) or len(a.args) != len(b.args):
		return None
	args = []
	for x, y in zip(a.args, b.args):
		merged = unify(x, y)
		if merged is None:
			return None
		args.append(merged)
	bindings = []
	names = [bd.name for bd in a.bindings] + [bd.name for bd in b.bindings if a.binding(bd.name) is None]
	for name in names:
		x, y = a.binding(name), b.binding(name)
		if x is not None and y is not None:
			merged = unify(x, y)
			if merged is None:
				return None
		else:
			merged = x if x is not None else y
		bindings.append(ast.AssocType(name, merged))
	return ast.TypeExpr(a.name, args, bindings)


def strip_refs(ty: ast.TypeExpr) -> ast.TypeExpr:
	while ty.name in ("&", "&mut") and ty.args:
		ty = ty.args[0]
	return ty


def iterator_of(item: ast.TypeExpr) -> ast.TypeExpr:
	return ast.TypeExpr("impl", [ast.TypeExpr("Iterator", bindings=[ast.AssocType("Item", item)])])


def element_type(ty: ast.TypeExpr) -> ast.TypeExpr:
	"""Item type produced by `for _ in <ty>`."""
	if ty.name in ("&", "&mut") and ty.args:
		inner = ty.args[0]
		elem = element_type(inner)
		if inner.name in ("Vec", "[]") and not is_unknown(elem):
			return ast.TypeExpr(ty.name, [elem])
		return elem
	name = canonical_name(ty.name)
	if name in ("Range", "RangeInclusive", "Vec", "[]", "VecDeque", "Option") and ty.args:
		return ty.args[0]
	if name == "impl":
		for bound in ty.args:
			item = bound.binding("Item")
			if item is not None:
				return item
	return ast.UNKNOWN_TYPE


class Scope:
	"""Lexical scope mapping binding names to their (possibly unknown) types."""

	def __init__(self, parent: Optional[Scope] = None) -> None:
		self.parent = parent
		self.vars: Dict[str, ast.TypeExpr] = {}

	def define(self, name: str, ty: Optional[ast.TypeExpr]) -> None:
		self.vars[name] = ty if ty is not None else ast.UNKNOWN_TYPE

	def lookup(self, name: str) -> ast.TypeExpr:
		if name in self.vars:
			return self.vars[name]
		if self.parent:
			return self.parent.lookup(name)
		return ast.UNKNOWN_TYPE

	def bind_pattern(self, pattern: ast.Pattern, ty: ast.TypeExpr) -> None:
		if isinstance(pattern, ast.BindPattern):
			self.define(pattern.name, ty)
		elif isinstance(pattern, ast.TuplePattern):
			for item, item_ty in zip(pattern.items, tuple_item_types(pattern, ty)):
				self.bind_pattern(item, item_ty)
		elif isinstance(pattern, ast.VariantPattern) and pattern.inner is not None:
			self.bind_pattern(pattern.inner, _variant_payload(pattern.variant, ty))


def tuple_item_types(pattern: ast.TuplePattern, ty: ast.TypeExpr) -> List[ast.TypeExpr]:
	"""Element type matched by each item of `pattern`; a `..` item gets `_`."""
	unknown = [ast.UNKNOWN_TYPE] * len(pattern.items)
	if ty.name != "tuple":
		return unknown
	rest = [idx for idx, item in enumerate(pattern.items) if isinstance(item, ast.RestPattern)]
	if not rest:
		return list(ty.args) if len(ty.args) == len(pattern.items) else unknown
	split = rest[0]
	tail = len(pattern.items) - split - 1
	if split + tail > len(ty.args):
		return unknown
	return [*ty.args[:split], ast.UNKNOWN_TYPE, *ty.args[len(ty.args) - tail :]]


def _variant_payload(variant: str, ty: ast.TypeExpr) -> ast.TypeExpr:
	name = canonical_name(ty.name)
	if variant == "Some" and name == "Option" and ty.args:
		return ty.args[0]
	if variant == "Ok" and name == "Result" and ty.args:
		return ty.args[0]
	if variant == "Err" and name == "Result" and len(ty.args) > 1:
		return ty.args[1]
	return ast.UNKNOWN_TYPE


def scope_for(defn: ast.Definition) -> Scope:
	scope = Scope()
	for param in defn.params:
		if param.receiver is None:
			scope.define(param.name, param.type_expr)
	if defn.prelude:
		typer = ExprTyper.for_definition(defn)
		for stmt in defn.prelude:
			if isinstance(stmt, ast.LetStmt):
				scope.bind_pattern(stmt.pattern, stmt.type_expr or typer.type_of(stmt.value, scope))
	return scope


class ExprTyper:
	"""Infers expression types against a `Scope` plus the nested `fn` signatures."""

	def __init__(self, fn_returns: Optional[Dict[str, ast.TypeExpr]] = None) -> None:
		self.fn_returns = dict(fn_returns or {})

	@classmethod
	def for_definition(cls, defn: ast.Definition) -> "ExprTyper":
		returns: Dict[str, ast.TypeExpr] = {}
		prelude = ast.Block(statements=list(defn.prelude), loc=defn.loc)
		for item in [*_nested_fn_items(prelude), *_nested_fn_items(defn.body)]:
			returns[item.name] = item.return_type or ast.UNIT_TYPE
		return cls(returns)

	def type_of(self, expr: ast.Expr, scope: Scope) -> ast.TypeExpr:
		if isinstance(expr, ast.Literal):
			return _literal_type(expr)
		if isinstance(expr, ast.Name):
			if expr.ident == "None":
				return ast.TypeExpr("Option", [ast.UNKNOWN_TYPE])
			return scope.lookup(expr.ident)
		if isinstance(expr, ast.Call):
			return self._call_type(expr, scope)
		if isinstance(expr, ast.MethodCall):
			return self._method_type(expr, scope)
		if isinstance(expr, ast.TupleLit):
			return ast.TypeExpr("tuple", [self.type_of(e, scope) for e in expr.elements])
		if isinstance(expr, ast.ArrayLit):
			elem = ast.UNKNOWN_TYPE
			for e in expr.elements:
				merged = unify(elem, self.type_of(e, scope))
				elem = merged if merged is not None else ast.UNKNOWN_TYPE
			return ast.TypeExpr("Vec", [elem])
		if isinstance(expr, ast.Borrow):
			inner = self.type_of(expr.value, scope)
			if is_unknown(inner):
				return ast.UNKNOWN_TYPE
			return ast.TypeExpr("&mut" if expr.mutable else "&", [inner])
		if isinstance(expr, ast.Unary):
			inner = self.type_of(expr.operand, scope)
			if expr.op == "*":
				return inner.args[0] if inner.name in ("&", "&mut") and inner.args else ast.UNKNOWN_TYPE
			if expr.op == "!" and inner == BOOL:
				return BOOL
			return inner if expr.op == "-" else ast.UNKNOWN_TYPE
		if isinstance(expr, ast.Binary):
			if expr.op in ("==", "!=", "<", "<=", ">", ">=", "&&", "||"):
				return BOOL
			merged = unify(self.type_of(expr.left, scope), self.type_of(expr.right, scope))
			return merged if merged is not None else ast.UNKNOWN_TYPE
		if isinstance(expr, ast.Range):
			merged = unify(self.type_of(expr.start, scope), self.type_of(expr.end, scope))
			name = "RangeInclusive" if expr.inclusive else "Range"
			return ast.TypeExpr(name, [merged if merged is not None else ast.UNKNOWN_TYPE])
		if isinstance(expr, ast.Index):
			base = strip_refs(self.type_of(expr.value, scope))
			if canonical_name(base.name) in ("Vec", "[]", "VecDeque") and base.args:
				return base.args[0]
			return ast.UNKNOWN_TYPE
		if isinstance(expr, ast.TupleField):
			base = strip_refs(self.type_of(expr.value, scope))
			if base.name == "tuple" and expr.index < len(base.args):
				return base.args[expr.index]
			return ast.UNKNOWN_TYPE
		if isinstance(expr, ast.TryExpr):
			inner = self.type_of(expr.expr, scope)
			if canonical_name(inner.name) in ("Option", "Result") and inner.args:
				return inner.args[0]
			return ast.UNKNOWN_TYPE
		if isinstance(expr, ast.YieldExpr):
			return ast.UNIT_TYPE
		if isinstance(expr, ast.MacroCall):
			if expr.name == "format":
				return STRING
			if expr.name in ("println", "print", "assert"):
				return ast.UNIT_TYPE
		return ast.UNKNOWN_TYPE

	def _call_type(self, expr: ast.Call, scope: Scope) -> ast.TypeExpr:
		func = expr.func
		if isinstance(func, ast.Name):
			args = [self.type_of(a, scope) for a in expr.args]
			if func.ident == "Some" and len(args) == 1:
				return ast.TypeExpr("Option", [args[0]])
			if func.ident == "Ok" and len(args) == 1:
				return ast.TypeExpr("Result", [args[0], ast.UNKNOWN_TYPE])
			if func.ident == "Err" and len(args) == 1:
				return ast.TypeExpr("Result", [ast.UNKNOWN_TYPE, args[0]])
			if func.ident in self.fn_returns:
				return self.fn_returns[func.ident]
			return ast.UNKNOWN_TYPE
		if isinstance(func, ast.Path):
			joined = "::".join(func.segments)
			if joined in ("String::from", "String::new"):
				return STRING
			if joined in ("Vec::new", "Vec::with_capacity"):
				return ast.TypeExpr("Vec", [ast.UNKNOWN_TYPE])
		return ast.UNKNOWN_TYPE

	def _method_type(self, expr: ast.MethodCall, scope: Scope) -> ast.TypeExpr:
		if expr.method in _FIXED_METHOD_TYPES:
			return _FIXED_METHOD_TYPES[expr.method]
		receiver = self.type_of(expr.receiver, scope)
		if expr.method in ("clone", "to_owned"):
			base = strip_refs(receiver)
			if base == ast.TypeExpr("str"):
				return STRING
			return base
		if expr.method in ("iter", "iter_mut"):
			elem = element_type(strip_refs(receiver))
			if is_unknown(elem):
				return ast.UNKNOWN_TYPE
			return iterator_of(ast.TypeExpr("&mut" if expr.method == "iter_mut" else "&", [elem]))
		if expr.method == "into_iter":
			elem = element_type(receiver)
			return ast.UNKNOWN_TYPE if is_unknown(elem) else iterator_of(elem)
		if expr.method in ("next", "pop", "first", "last"):
			elem = element_type(strip_refs(receiver))
			if expr.method in ("first", "last") and not is_unknown(elem):
				elem = ast.TypeExpr("&", [elem])
			return ast.UNKNOWN_TYPE if is_unknown(elem) else ast.TypeExpr("Option", [elem])
		if expr.method in ("take", "replace"):
			base = strip_refs(receiver)
			return base if canonical_name(base.name) == "Option" else ast.UNKNOWN_TYPE
		if expr.method in ("unwrap", "expect"):
			base = strip_refs(receiver)
			if canonical_name(base.name) in ("Option", "Result") and base.args:
				return base.args[0]
		return ast.UNKNOWN_TYPE


def _literal_type(lit: ast.Literal) -> ast.TypeExpr:
	if lit.kind == "int":
		return ast.TypeExpr(lit.suffix) if lit.suffix else INT_LITERAL
	if lit.kind == "float":
		return ast.TypeExpr(lit.suffix) if lit.suffix else FLOAT_LITERAL
	if lit.kind == "str":
		return STR_REF
	if lit.kind == "char":
		return CHAR
	if lit.kind == "bool":
		return BOOL
	return ast.UNIT_TYPE


def _nested_fn_items(block: ast.Block):
	for stmt in block.statements:
		if isinstance(stmt, ast.FnItem):
			yield stmt
		for sub in _child_blocks(stmt):
			yield from _nested_fn_items(sub)


def _child_blocks(stmt: ast.Stmt):
	if isinstance(stmt, ast.LetStmt) and stmt.else_block is not None:
		yield stmt.else_block
	elif isinstance(stmt, ast.IfStmt):
		yield stmt.then_block
		if stmt.else_block is not None:
			yield stmt.else_block
	elif isinstance(stmt, (ast.WhileStmt, ast.LoopStmt, ast.ForStmt)):
		yield stmt.body
	elif isinstance(stmt, ast.BlockStmt):
		yield stmt.block
	elif isinstance(stmt, ast.MatchStmt):
		for arm in stmt.arms:
			yield arm.body


__all__ = [
	"ExprTyper",
	"INT_LITERAL",
	"FLOAT_LITERAL",
	"Scope",
	"definition_mode",
	"element_type",
	"is_unknown",
	"residual_mode",
	"scope_for",
	"tuple_item_types",
	"unify",
]
