# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Surface AST for iterator items.

The recognizer builds these nodes from the lark parse tree; the validator reads
them; the desugarer produces *new* trees (it never mutates its input) that may
additionally contain `SuspendStmt`, `TerminateStmt` and `RuntimeCall`.

`TypeExpr` deliberately carries no location so that dataclass equality is
structural type equality.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Iterator, List, Optional, Union


@dataclass(frozen=True)
class Located:
	line: int
	column: int
	end_line: Optional[int] = None
	end_column: Optional[int] = None


@dataclass
class AssocType:
	"""Associated type binding inside type args (`Item = T`)."""

	name: str
	type_expr: "TypeExpr"


@dataclass
class TypeExpr:
	"""
	Structural type.

	Paths use their spelled name (`Vec`, `std::vec::Vec`). Special names:
	`&` / `&mut` (one arg), `()` (unit), `tuple` (element args), `[]` (slice,
	one arg), `impl` (args are the bounds), `_` (unknown).
	"""

	name: str
	args: List["TypeExpr"] = field(default_factory=list)
	bindings: List[AssocType] = field(default_factory=list)

	def binding(self, name: str) -> Optional["TypeExpr"]:
		for b in self.bindings:
			if b.name == name:
				return b.type_expr
		return None


UNIT_TYPE = TypeExpr("()")
UNKNOWN_TYPE = TypeExpr("_")


def format_type(ty: TypeExpr) -> str:
	"""Render a TypeExpr back in source syntax (used by diagnostics)."""
	if ty.name in ("&", "&mut"):
		sep = " " if ty.name == "&mut" else ""
		return f"{ty.name}{sep}{format_type(ty.args[0])}"
	if ty.name == "()":
		return "()"
	if ty.name == "tuple":
		inner = ", ".join(format_type(a) for a in ty.args)
		return f"({inner},)" if len(ty.args) == 1 else f"({inner})"
	if ty.name == "[]":
		return f"[{format_type(ty.args[0])}]"
	if ty.name == "impl":
		return "impl " + " + ".join(format_type(a) for a in ty.args)
	parts = [format_type(a) for a in ty.args]
	parts.extend(f"{b.name} = {format_type(b.type_expr)}" for b in ty.bindings)
	if not parts:
		return ty.name
	return f"{ty.name}<{', '.join(parts)}>"


@dataclass
class Param:
	name: str
	type_expr: Optional[TypeExpr]
	loc: Located
	mutable: bool = False
	# Receiver kind for `self` params: "self", "&self" or "&mut self".
	receiver: Optional[str] = None


@dataclass
class GenericParam:
	name: str
	bounds: List[TypeExpr]
	loc: Located


@dataclass
class Attribute:
	name: str
	args: List["Expr"]
	loc: Located


@dataclass
class Block:
	statements: List["Stmt"]
	loc: Located
	# Trailing expression without `;`.
	tail: Optional["Expr"] = None


@dataclass
class Definition:
	"""
	One iterator item.

	`syntax` is "fn*", "gen fn" or "gen block". For a gen block, `prelude` holds
	the statements before the `gen { ... }` block; they run eagerly when the
	public function is called, and `body` is the block itself.
	"""

	name: str
	params: List[Param]
	yielded_type: TypeExpr
	body: Block
	loc: Located
	is_async: bool = False
	is_pub: bool = False
	docs: List[str] = field(default_factory=list)
	attributes: List[Attribute] = field(default_factory=list)
	generics: List[GenericParam] = field(default_factory=list)
	syntax: str = "fn*"
	prelude: List["Stmt"] = field(default_factory=list)

	@property
	def receiver(self) -> Optional[str]:
		if self.params and self.params[0].receiver is not None:
			return self.params[0].receiver
		return None

	def attribute(self, name: str) -> Optional[Attribute]:
		for attr in self.attributes:
			if attr.name == name:
				return attr
		return None


# Patterns ----------------------------------------------------------------


class Pattern:
	loc: Located


@dataclass
class BindPattern(Pattern):
	loc: Located
	name: str
	mutable: bool = False


@dataclass
class WildcardPattern(Pattern):
	loc: Located


@dataclass
class TuplePattern(Pattern):
	loc: Located
	items: List[Pattern]


@dataclass
class VariantPattern(Pattern):
	"""`Some(p)`, `Ok(p)`, `Err(p)`; `None` has no inner pattern."""

	loc: Located
	variant: str
	inner: Optional[Pattern] = None


@dataclass
class LiteralPattern(Pattern):
	loc: Located
	value: "Literal"


@dataclass
class RestPattern(Pattern):
	"""`..` inside a tuple pattern."""

	loc: Located


def pattern_bindings(pat: Pattern) -> Iterator[BindPattern]:
	if isinstance(pat, BindPattern):
		yield pat
	elif isinstance(pat, TuplePattern):
		for item in pat.items:
			yield from pattern_bindings(item)
	elif isinstance(pat, VariantPattern) and pat.inner is not None:
		yield from pattern_bindings(pat.inner)


def is_refutable(pat: Pattern) -> bool:
	if isinstance(pat, (VariantPattern, LiteralPattern)):
		return True
	if isinstance(pat, TuplePattern):
		return any(is_refutable(p) for p in pat.items)
	return False


# Statements --------------------------------------------------------------


class Stmt:
	loc: Located


@dataclass
class LetStmt(Stmt):
	loc: Located
	pattern: Pattern
	type_expr: Optional[TypeExpr]
	value: "Expr"
	# `let PAT = EXPR else { ... };`
	else_block: Optional[Block] = None


@dataclass
class AssignStmt(Stmt):
	loc: Located
	target: "Expr"
	value: "Expr"
	# "=" or a compound operator ("+=", ...).
	op: str = "="


@dataclass
class ExprStmt(Stmt):
	loc: Located
	value: "Expr"


@dataclass
class ReturnStmt(Stmt):
	loc: Located
	value: Optional["Expr"]


@dataclass
class BreakStmt(Stmt):
	loc: Located


@dataclass
class ContinueStmt(Stmt):
	loc: Located


@dataclass
class LetCondition:
	"""`let PAT = EXPR` in `if let` / `while let` heads."""

	loc: Located
	pattern: Pattern
	value: "Expr"


Condition = Union["Expr", LetCondition]


@dataclass
class IfStmt(Stmt):
	loc: Located
	condition: Condition
	then_block: Block
	else_block: Optional[Block] = None


@dataclass
class WhileStmt(Stmt):
	loc: Located
	condition: Condition
	body: Block


@dataclass
class LoopStmt(Stmt):
	loc: Located
	body: Block


@dataclass
class ForStmt(Stmt):
	loc: Located
	pattern: Pattern
	iterable: "Expr"
	body: Block


@dataclass
class BlockStmt(Stmt):
	loc: Located
	block: Block


@dataclass
class FnItem(Stmt):
	"""Nested plain `fn` item inside an iterator body."""

	loc: Located
	name: str
	params: List[Param]
	return_type: Optional[TypeExpr]
	body: Block


@dataclass
class MatchArm:
	loc: Located
	pattern: Pattern
	guard: Optional["Expr"]
	# Expression arms are wrapped as a block holding one `ExprStmt`.
	body: Block


@dataclass
class MatchStmt(Stmt):
	loc: Located
	subject: "Expr"
	arms: List[MatchArm]


@dataclass
class SuspendStmt(Stmt):
	"""Desugared `yield`: hand `value` to the consumer and pause."""

	loc: Located
	value: "Expr"


@dataclass
class TerminateStmt(Stmt):
	"""Desugared top-level `return`: finish the sequence."""

	loc: Located


# Expressions -------------------------------------------------------------


class Expr:
	loc: Located


@dataclass
class Literal(Expr):
	loc: Located
	value: object
	# "int", "float", "str", "char", "bool" or "unit".
	kind: str
	# Numeric suffix (`10u8` -> "u8").
	suffix: Optional[str] = None


@dataclass
class Name(Expr):
	loc: Located
	ident: str


@dataclass
class Path(Expr):
	loc: Located
	segments: List[str]


@dataclass
class Call(Expr):
	loc: Located
	func: Expr
	args: List[Expr]


@dataclass
class MethodCall(Expr):
	loc: Located
	receiver: Expr
	method: str
	args: List[Expr]


@dataclass
class Field(Expr):
	loc: Located
	value: Expr
	attr: str


@dataclass
class TupleField(Expr):
	loc: Located
	value: Expr
	index: int


@dataclass
class Index(Expr):
	loc: Located
	value: Expr
	index: Expr


@dataclass
class Unary(Expr):
	# "-", "!" or "*" (deref).
	loc: Located
	op: str
	operand: Expr


@dataclass
class Borrow(Expr):
	loc: Located
	value: Expr
	mutable: bool = False


@dataclass
class Binary(Expr):
	loc: Located
	op: str
	left: Expr
	right: Expr


@dataclass
class Range(Expr):
	loc: Located
	start: Expr
	end: Expr
	inclusive: bool = False


@dataclass
class TupleLit(Expr):
	loc: Located
	elements: List[Expr]


@dataclass
class ArrayLit(Expr):
	"""`[a, b]` and `vec![a, b]`."""

	loc: Located
	elements: List[Expr]


@dataclass
class MacroCall(Expr):
	"""`format!`, `println!`, `print!`, `panic!`, `assert!`."""

	loc: Located
	name: str
	args: List[Expr]


@dataclass
class YieldExpr(Expr):
	loc: Located
	value: Optional[Expr]


@dataclass
class TryExpr(Expr):
	"""Postfix `expr?`."""

	loc: Located
	expr: Expr


@dataclass
class AwaitExpr(Expr):
	loc: Located
	value: Expr


@dataclass
class RuntimeCall(Expr):
	"""Call of a runtime helper introduced by desugaring (`is_residual`, ...)."""

	loc: Located
	helper: str
	args: List[Expr]


def child_exprs(expr: Expr) -> List[Expr]:
	"""Direct sub-expressions of `expr`, in evaluation order."""
	if isinstance(expr, (Literal, Name, Path)):
		return []
	if isinstance(expr, Call):
		return [expr.func, *expr.args]
	if isinstance(expr, MethodCall):
		return [expr.receiver, *expr.args]
	if isinstance(expr, (Field, TupleField)):
		return [expr.value]
	if isinstance(expr, Index):
		return [expr.value, expr.index]
	if isinstance(expr, Unary):
		return [expr.operand]
	if isinstance(expr, (Borrow, AwaitExpr)):
		return [expr.value]
	if isinstance(expr, Binary):
		return [expr.left, expr.right]
	if isinstance(expr, Range):
		return [expr.start, expr.end]
	if isinstance(expr, (TupleLit, ArrayLit)):
		return list(expr.elements)
	if isinstance(expr, (MacroCall, RuntimeCall)):
		return list(expr.args)
	if isinstance(expr, YieldExpr):
		return [expr.value] if expr.value is not None else []
	if isinstance(expr, TryExpr):
		return [expr.expr]
	raise NotImplementedError(f"child_exprs does not handle {type(expr).__name__}")


def walk_expr(expr: Expr) -> Iterator[Expr]:
	"""Pre-order walk over an expression tree."""
	yield expr
	for child in child_exprs(expr):
		yield from walk_expr(child)


__all__ = [
	"ArrayLit",
	"AssignStmt",
	"AssocType",
	"Attribute",
	"AwaitExpr",
	"BindPattern",
	"Binary",
	"Block",
	"BlockStmt",
	"Borrow",
	"BreakStmt",
	"Call",
	"Condition",
	"ContinueStmt",
	"Definition",
	"Expr",
	"ExprStmt",
	"Field",
	"FnItem",
	"ForStmt",
	"GenericParam",
	"IfStmt",
	"Index",
	"LetCondition",
	"LetStmt",
	"Literal",
	"LiteralPattern",
	"Located",
	"LoopStmt",
	"MacroCall",
	"MatchArm",
	"MatchStmt",
	"MethodCall",
	"Name",
	"Param",
	"Path",
	"Pattern",
	"Range",
	"RestPattern",
	"ReturnStmt",
	"RuntimeCall",
	"Stmt",
	"SuspendStmt",
	"TerminateStmt",
	"TryExpr",
	"TupleField",
	"TupleLit",
	"TuplePattern",
	"TypeExpr",
	"Unary",
	"UNIT_TYPE",
	"UNKNOWN_TYPE",
	"VariantPattern",
	"WhileStmt",
	"WildcardPattern",
	"YieldExpr",
	"child_exprs",
	"format_type",
	"is_refutable",
	"pattern_bindings",
	"walk_expr",
]
