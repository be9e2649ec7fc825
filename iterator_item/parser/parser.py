# vim: set noexpandtab: -*- indent-tabs-mode: t -*-
"""
Recognizer for iterator items.

Two steps:

1. `scan_items` lexes the whole source with the grammar's basic lexer and cuts
   it into item slices. The body of an item is the first `{` at bracket depth 0
   after the `fn` keyword, up to its matching `}`. Slicing first means a syntax
   error in one item never hides diagnostics for the others.
2. `parse_item` parses one slice with the LALR parser and folds the lark tree
   into the dataclass AST in `iterator_item.parser.ast`. The slice is padded so
   lark reports absolute line/column positions.

Errors are raised as `SignatureError` / `BodyError` (both carry a `loc`), or as
lark's `UnexpectedInput`; `iterator_item.parser.parse_items` adapts all of them
into diagnostics.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional, Tuple

from lark import Lark, Token, Tree
from lark.exceptions import UnexpectedCharacters, UnexpectedInput

from iterator_item.core.diagnostics import ErrorKind

from .ast import (
	ArrayLit,
	AssignStmt,
	AssocType,
	Attribute,
	AwaitExpr,
	BindPattern,
	Binary,
	Block,
	BlockStmt,
	Borrow,
	BreakStmt,
	Call,
	Condition,
	ContinueStmt,
	Definition,
	Expr,
	ExprStmt,
	Field,
	FnItem,
	ForStmt,
	GenericParam,
	IfStmt,
	Index,
	LetCondition,
	LetStmt,
	Literal,
	LiteralPattern,
	Located,
	LoopStmt,
	MacroCall,
	MatchArm,
	MatchStmt,
	MethodCall,
	Name,
	Param,
	Path as PathExpr,
	Pattern,
	Range,
	RestPattern,
	ReturnStmt,
	Stmt,
	TryExpr,
	TupleField,
	TupleLit,
	TuplePattern,
	TypeExpr,
	Unary,
	UNKNOWN_TYPE,
	VariantPattern,
	WhileStmt,
	WildcardPattern,
	YieldExpr,
)

_GRAMMAR_PATH = Path(__file__).with_name("grammar.lark")
_GRAMMAR_SRC = _GRAMMAR_PATH.read_text()

_PARSER = Lark(
	_GRAMMAR_SRC,
	parser="lalr",
	lexer="basic",
	start="item",
	propagate_positions=True,
	maybe_placeholders=False,
)

# Tokens that may open an item (doc comment, attribute, `pub`, `async`, `fn*`, `gen fn`, `fn`).
_ITEM_START = frozenset({"DOC_COMMENT", "HASH", "PUB", "ASYNC", "FN", "GEN"})
_SUPPORTED_MACROS = frozenset({"vec", "format", "println", "print", "panic", "assert"})
_RESIDUAL_VARIANTS = frozenset({"Some", "Ok", "Err"})
_NUMBER_SUFFIX = re.compile(r"(i8|i16|i32|i64|i128|isize|u8|u16|u32|u64|u128|usize|f32|f64)$")


class ItemSyntaxError(ValueError):
	"""Recognizer error with a source location and an error kind."""

	kind = ErrorKind.MALFORMED_SIGNATURE

	def __init__(self, message: str, loc: Optional[Located] = None, notes: Optional[List[str]] = None) -> None:
		super().__init__(message)
		self.loc = loc
		self.notes = list(notes or [])


class SignatureError(ItemSyntaxError):
	"""Header is unparseable (missing `yields`, bad parameter list, missing body)."""

	kind = ErrorKind.MALFORMED_SIGNATURE


class BodyError(ItemSyntaxError):
	"""Body is not a valid statement sequence."""

	kind = ErrorKind.MALFORMED_BODY


@dataclass(frozen=True)
class ItemSlice:
	"""Source text of one item plus where it sits in the original file."""

	text: str
	line: int
	column: int
	# Position of the body's opening brace. Parse errors after it are body errors;
	# an unexpected brace itself means the header stopped short.
	body_open: Tuple[int, int]

	def padded(self) -> str:
		return "\n" * (self.line - 1) + " " * (self.column - 1) + self.text

	def in_body(self, line: Optional[int], column: Optional[int]) -> bool:
		if line is None or line < 0:
			return True
		return (line, column or 0) > self.body_open


def _lex(source: str) -> Tuple[List[Token], Optional[UnexpectedCharacters]]:
	tokens: List[Token] = []
	try:
		for tok in _PARSER.lex(source):
			tokens.append(tok)
	except UnexpectedCharacters as err:
		return tokens, err
	return tokens, None


def _lex_error(err: UnexpectedCharacters, cls: type) -> ItemSyntaxError:
	return cls(
		f"unexpected character `{err.char}`",
		Located(line=err.line, column=err.column),
	)


def scan_items(source: str) -> Tuple[List[ItemSlice], List[ItemSyntaxError]]:
	"""Split `source` into item slices; problems found while slicing are returned, not raised."""
	tokens, lex_error = _lex(source)
	slices: List[ItemSlice] = []
	problems: List[ItemSyntaxError] = []
	i, n = 0, len(tokens)
	while i < n:
		tok = tokens[i]
		if tok.type not in _ITEM_START:
			problems.append(
				SignatureError(
					f"expected an iterator item (`fn*`, `gen fn` or a `fn` returning a `gen` block), found `{tok.value}`",
					_loc_from_token(tok),
				)
			)
			while i < n and tokens[i].type not in _ITEM_START:
				i += 1
			continue

		depth = 0
		seen_fn = False
		open_idx: Optional[int] = None
		j = i
		while j < n:
			t = tokens[j]
			if t.type in ("LPAR", "LSQB"):
				depth += 1
			elif t.type in ("RPAR", "RSQB"):
				depth -= 1
			elif depth == 0:
				if t.type == "LBRACE":
					open_idx = j
					break
				if t.type == "SEMICOLON":
					break
				if t.type == "FN":
					if seen_fn:
						break
					seen_fn = True
				elif seen_fn and t.type in _ITEM_START:
					break
			j += 1

		if open_idx is None:
			if j >= n and lex_error is not None:
				problems.append(_lex_error(lex_error, SignatureError))
				lex_error = None
			else:
				problems.append(SignatureError("missing iterator body", _loc_from_token(tok)))
			i = j + 1 if j < n and tokens[j].type == "SEMICOLON" else max(j, i + 1)
			continue

		brace_depth = 0
		close_idx: Optional[int] = None
		for k in range(open_idx, n):
			if tokens[k].type == "LBRACE":
				brace_depth += 1
			elif tokens[k].type == "RBRACE":
				brace_depth -= 1
				if brace_depth == 0:
					close_idx = k
					break
		if close_idx is None:
			if lex_error is not None:
				problems.append(_lex_error(lex_error, BodyError))
				lex_error = None
			else:
				problems.append(BodyError("unclosed iterator body", _loc_from_token(tokens[open_idx])))
			break

		body_tok = tokens[open_idx]
		slices.append(
			ItemSlice(
				text=source[tok.start_pos : tokens[close_idx].end_pos],
				line=tok.line,
				column=tok.column,
				body_open=(body_tok.line, body_tok.column),
			)
		)
		i = close_idx + 1

	if lex_error is not None:
		problems.append(_lex_error(lex_error, SignatureError))
	return slices, problems


def parse_item(item: ItemSlice) -> Definition:
	"""Parse one item slice. Raises `UnexpectedInput` or `ItemSyntaxError`."""
	tree = _PARSER.parse(item.padded())
	return _build_item(tree)


def describe_unexpected(err: UnexpectedInput) -> Tuple[str, List[str]]:
	"""Short message plus notes for a lark parse error."""
	token = getattr(err, "token", None)
	expected = sorted(getattr(err, "expected", None) or ())
	if isinstance(err, UnexpectedCharacters):
		return f"unexpected character `{err.char}`", []
	if token is None or token.type == "$END":
		return "unexpected end of item", []
	if "YIELDS" in expected:
		return f"expected contextual keyword `yields`, found `{token.value}`", []
	if "GEN" in expected and token.type == "RBRACE":
		return "expected a `gen { ... }` block at the end of the function body", []
	notes = []
	if expected:
		shown = ", ".join(_describe_terminal(name) for name in expected[:8])
		if len(expected) > 8:
			shown += ", ..."
		notes.append(f"expected one of: {shown}")
	return f"unexpected `{token.value}`", notes


def _describe_terminal(name: str) -> str:
	try:
		term = _PARSER.get_terminal(name)
	except KeyError:
		return name
	if term.pattern.type == "str":
		return f"`{term.pattern.value}`"
	return name.lower()


# Items -------------------------------------------------------------------


def _build_item(tree: Tree) -> Definition:
	docs: List[str] = []
	attributes: List[Attribute] = []
	generics: List[GenericParam] = []
	params: List[Param] = []
	is_pub = False
	is_async = False
	syntax = "fn*"
	name_tok: Optional[Token] = None
	yielded: Optional[TypeExpr] = None
	body: Optional[Block] = None
	return_type: Optional[TypeExpr] = None
	prelude: List[Stmt] = []
	for child in tree.children:
		if isinstance(child, Token):
			if child.type == "DOC_COMMENT":
				docs.append(_doc_text(child))
			elif child.type == "PUB":
				is_pub = True
			elif child.type == "ASYNC":
				is_async = True
			elif child.type == "NAME":
				name_tok = child
			continue
		kind = _name(child)
		if kind == "attribute":
			attributes.append(_build_attribute(child))
		elif kind == "fn_star":
			syntax = "fn*"
		elif kind == "gen_fn":
			syntax = "gen fn"
		elif kind == "generics":
			generics = [_build_generic_param(p) for p in child.children if _name(p) != "lifetime_param"]
		elif kind == "params":
			params = _build_params(child)
		elif kind == "yields_clause":
			yielded = _build_yields_clause(child, syntax)
		elif kind == "return_annot":
			return_type = _build_type(child.children[0])
		elif kind == "gen_body":
			syntax = "gen block"
			prelude, block_attrs, is_async, body = _build_gen_body(child)
			attributes.extend(block_attrs)
		elif kind == "block":
			body = _build_block(child)
	if syntax == "gen block":
		assert name_tok is not None
		yielded = _gen_block_item_type(return_type, _loc_from_token(name_tok))
	assert name_tok is not None and yielded is not None and body is not None
	return Definition(
		name=name_tok.value,
		params=params,
		yielded_type=yielded,
		body=body,
		loc=_loc_from_token(name_tok),
		is_async=is_async,
		is_pub=is_pub,
		docs=docs,
		attributes=attributes,
		generics=generics,
		syntax=syntax,
		prelude=prelude,
	)


def _build_gen_body(tree: Tree) -> Tuple[List[Stmt], List[Attribute], bool, Block]:
	prelude: List[Stmt] = []
	for child in tree.children:
		if _name(child) in _STMT_KINDS:
			stmt = _build_stmt(child)
			if stmt is not None:
				prelude.append(stmt)
			continue
		attributes = [_build_attribute(c) for c in child.children if _name(c) == "attribute"]
		is_async = any(isinstance(c, Token) and c.type == "ASYNC" for c in child.children)
		block = next(c for c in child.children if _name(c) == "block")
		return prelude, attributes, is_async, _build_block(block)
	raise NotImplementedError("gen_body without a gen block")


def _gen_block_item_type(return_type: Optional[TypeExpr], loc: Located) -> TypeExpr:
	"""Element type of `-> impl Iterator<Item = T>` (or `impl Stream<Item = T>`)."""
	if return_type is None:
		return UNKNOWN_TYPE
	bounds = return_type.args if return_type.name == "impl" else [return_type]
	for bound in bounds:
		item = bound.binding("Item")
		if item is not None:
			return item
	raise SignatureError(
		"a function returning a `gen` block must return `impl Iterator<Item = T>`",
		loc,
	)


def _doc_text(tok: Token) -> str:
	text = tok.value[3:]
	return text[1:] if text.startswith(" ") else text


def _build_yields_clause(tree: Tree, syntax: str) -> TypeExpr:
	marker, type_node = tree.children
	if syntax == "fn*" and marker.type != "YIELDS":
		raise SignatureError(
			f"expected contextual keyword `yields`, found `{marker.value}`",
			_loc_from_token(marker),
			notes=["`fn*` items name their element type with `yields TYPE`"],
		)
	if syntax == "gen fn" and marker.type != "ARROW":
		raise SignatureError(
			"expected `->` after the parameter list of a `gen fn` item",
			_loc_from_token(marker),
		)
	return _build_type(type_node)


def _build_attribute(tree: Tree) -> Attribute:
	name_tok = next(c for c in tree.children if isinstance(c, Token) and c.type == "NAME")
	args: List[Expr] = []
	for child in tree.children:
		if isinstance(child, Tree) and _name(child) == "attr_args":
			for sub in child.children:
				args.extend(_build_call_args(sub))
	if name_tok.value == "size_hint" and len(args) != 1:
		raise SignatureError(
			f"`#[size_hint]` takes exactly one argument, got {len(args)}",
			_loc(tree),
			notes=["write `#[size_hint((lower, Some(upper)))]`"],
		)
	return Attribute(name=name_tok.value, args=args, loc=_loc(tree))


def _build_generic_param(tree: Tree) -> GenericParam:
	name_tok = tree.children[0]
	bounds = [_build_type(c) for c in tree.children[1:]]
	return GenericParam(name=name_tok.value, bounds=bounds, loc=_loc_from_token(name_tok))


def _build_params(tree: Tree) -> List[Param]:
	params: List[Param] = []
	seen: set[str] = set()
	for idx, node in enumerate(tree.children):
		param = _build_param(node)
		if param.receiver is not None and idx != 0:
			raise SignatureError("`self` parameter is only allowed as the first parameter", param.loc)
		if param.name in seen:
			raise SignatureError(f"identifier `{param.name}` is bound more than once in this parameter list", param.loc)
		seen.add(param.name)
		params.append(param)
	return params


def _build_param(tree: Tree) -> Param:
	tokens = [c for c in tree.children if isinstance(c, Token)]
	types = [c for c in tree.children if isinstance(c, Tree)]
	kinds = {t.type for t in tokens}
	if _name(tree) == "self_param":
		self_tok = tokens[-1]
		if "AMP" in kinds:
			receiver = "&mut self" if "MUT" in kinds else "&self"
		else:
			receiver = "self"
		return Param(
			name="self",
			type_expr=None,
			loc=_loc_from_token(self_tok),
			mutable="MUT" in kinds and "AMP" not in kinds,
			receiver=receiver,
		)
	name_tok = next(t for t in tokens if t.type == "NAME")
	return Param(
		name=name_tok.value,
		type_expr=_build_type(types[0]),
		loc=_loc_from_token(name_tok),
		mutable="MUT" in kinds,
	)


# Types -------------------------------------------------------------------


def _build_type(node: Tree) -> TypeExpr:
	kind = _name(node)
	if kind == "ref_type":
		is_mut = any(isinstance(c, Token) and c.type == "MUT" for c in node.children)
		inner = next(c for c in node.children if isinstance(c, Tree))
		return TypeExpr("&mut" if is_mut else "&", [_build_type(inner)])
	if kind == "unit_type":
		return TypeExpr("()")
	if kind == "tuple_type":
		return TypeExpr("tuple", [_build_type(c) for c in node.children])
	if kind == "slice_type":
		return TypeExpr("[]", [_build_type(node.children[0])])
	if kind == "impl_type":
		return TypeExpr("impl", [_build_type(c) for c in node.children if isinstance(c, Tree)])
	if kind == "infer_type":
		return TypeExpr("_")
	if kind == "type_path":
		segments = [c.value for c in node.children if isinstance(c, Token)]
		ty = TypeExpr("::".join(segments))
		for child in node.children:
			if isinstance(child, Tree) and _name(child) == "type_args":
				for arg in child.children:
					if _name(arg) == "assoc_type":
						name_tok, type_node = arg.children
						ty.bindings.append(AssocType(name_tok.value, _build_type(type_node)))
					else:
						ty.args.append(_build_type(arg))
		return ty
	raise NotImplementedError(f"_build_type does not handle {kind}")


# Statements --------------------------------------------------------------

_STMT_KINDS = frozenset(
	{
		"let_stmt",
		"assign_stmt",
		"expr_stmt",
		"return_stmt",
		"break_stmt",
		"continue_stmt",
		"if_stmt",
		"while_stmt",
		"loop_stmt",
		"for_stmt",
		"block",
		"fn_item",
		"match_stmt",
		"empty_stmt",
	}
)


def _build_block(tree: Tree) -> Block:
	statements: List[Stmt] = []
	tail: Optional[Expr] = None
	for child in tree.children:
		if _name(child) in _STMT_KINDS:
			stmt = _build_stmt(child)
			if stmt is not None:
				statements.append(stmt)
		else:
			tail = _build_expr(child)
	return Block(statements=statements, loc=_loc(tree), tail=tail)


def _build_stmt(tree: Tree) -> Optional[Stmt]:
	kind = _name(tree)
	loc = _loc(tree)
	children = tree.children
	if kind == "empty_stmt":
		return None
	if kind == "let_stmt":
		pattern = _build_pattern(children[0])
		type_expr: Optional[TypeExpr] = None
		value: Optional[Expr] = None
		else_block: Optional[Block] = None
		for child in children[1:]:
			child_kind = _name(child)
			if child_kind == "type_annot":
				type_expr = _build_type(child.children[0])
			elif child_kind == "let_else":
				else_block = _build_block(child.children[0])
			else:
				value = _build_expr(child)
		assert value is not None
		return LetStmt(loc=loc, pattern=pattern, type_expr=type_expr, value=value, else_block=else_block)
	if kind == "assign_stmt":
		target, op_node, value_node = children
		op_tok = op_node.children[0]
		return AssignStmt(loc=loc, target=_build_expr(target), value=_build_expr(value_node), op=op_tok.value)
	if kind == "expr_stmt":
		return ExprStmt(loc=loc, value=_build_expr(children[0]))
	if kind == "return_stmt":
		return ReturnStmt(loc=loc, value=_build_expr(children[0]) if children else None)
	if kind == "break_stmt":
		return BreakStmt(loc=loc)
	if kind == "continue_stmt":
		return ContinueStmt(loc=loc)
	if kind == "if_stmt":
		return _build_if(tree)
	if kind == "while_stmt":
		return WhileStmt(loc=loc, condition=_build_condition(children[0]), body=_build_block(children[1]))
	if kind == "loop_stmt":
		return LoopStmt(loc=loc, body=_build_block(children[0]))
	if kind == "for_stmt":
		pattern_node, iterable, body = children
		return ForStmt(
			loc=loc,
			pattern=_build_pattern(pattern_node),
			iterable=_build_expr(iterable),
			body=_build_block(body),
		)
	if kind == "block":
		return BlockStmt(loc=loc, block=_build_block(tree))
	if kind == "fn_item":
		return _build_fn_item(tree)
	if kind == "match_stmt":
		return MatchStmt(loc=loc, subject=_build_expr(children[0]), arms=[_build_match_arm(c) for c in children[1:]])
	raise NotImplementedError(f"_build_stmt does not handle {kind}")


def _build_if(tree: Tree) -> IfStmt:
	children = tree.children
	condition = _build_condition(children[0])
	then_block = _build_block(children[1])
	else_block: Optional[Block] = None
	if len(children) > 2:
		branch = children[2].children[0]
		if _name(branch) == "if_stmt":
			nested = _build_if(branch)
			else_block = Block(statements=[nested], loc=nested.loc)
		else:
			else_block = _build_block(branch)
	return IfStmt(loc=_loc(tree), condition=condition, then_block=then_block, else_block=else_block)


def _build_condition(node: Tree) -> Condition:
	if _name(node) == "let_condition":
		pattern_node, value_node = node.children
		return LetCondition(loc=_loc(node), pattern=_build_pattern(pattern_node), value=_build_expr(value_node))
	return _build_expr(node)


def _build_match_arm(tree: Tree) -> MatchArm:
	pattern = _build_pattern(tree.children[0])
	guard: Optional[Expr] = None
	for child in tree.children[1:-1]:
		if _name(child) == "match_guard":
			guard = _build_expr(child.children[0])
	body_node = tree.children[-1]
	if _name(body_node) == "block":
		body = _build_block(body_node)
	else:
		value = _build_expr(body_node)
		body = Block(statements=[ExprStmt(loc=value.loc, value=value)], loc=value.loc)
	return MatchArm(loc=_loc(tree), pattern=pattern, guard=guard, body=body)


def _build_fn_item(tree: Tree) -> FnItem:
	name_tok = tree.children[0]
	params: List[Param] = []
	return_type: Optional[TypeExpr] = None
	body: Optional[Block] = None
	for child in tree.children[1:]:
		kind = _name(child)
		if kind == "params":
			try:
				params = _build_params(child)
			except SignatureError as err:
				raise BodyError(str(err), err.loc) from err
		elif kind == "return_annot":
			return_type = _build_type(child.children[0])
		elif kind == "block":
			body = _build_block(child)
	assert body is not None
	if any(p.receiver is not None for p in params):
		raise BodyError("nested `fn` items cannot take `self`", _loc_from_token(name_tok))
	return FnItem(loc=_loc(tree), name=name_tok.value, params=params, return_type=return_type, body=body)


# Patterns ----------------------------------------------------------------


def _build_pattern(node: Tree, in_tuple: bool = False) -> Pattern:
	kind = _name(node)
	loc = _loc(node)
	if kind == "bind_pattern":
		name_tok = node.children[-1]
		mutable = len(node.children) > 1
		if name_tok.value == "None" and not mutable:
			return VariantPattern(loc=loc, variant="None")
		return BindPattern(loc=loc, name=name_tok.value, mutable=mutable)
	if kind == "wildcard_pattern":
		return WildcardPattern(loc=loc)
	if kind == "variant_pattern":
		name_tok, inner = node.children
		if name_tok.value not in _RESIDUAL_VARIANTS:
			raise BodyError(f"unsupported pattern `{name_tok.value}(..)`", loc, notes=["only `Some`, `Ok`, `Err` and `None` patterns are supported"])
		if _name(inner) == "rest_pattern":
			# `Some(..)` ignores the payload.
			return VariantPattern(loc=loc, variant=name_tok.value, inner=WildcardPattern(loc=_loc(inner)))
		return VariantPattern(loc=loc, variant=name_tok.value, inner=_build_pattern(inner))
	if kind == "unit_pattern":
		return TuplePattern(loc=loc, items=[])
	if kind == "paren_pattern":
		inner = node.children[0]
		if _name(inner) == "rest_pattern":
			return TuplePattern(loc=loc, items=[RestPattern(loc=_loc(inner))])
		return _build_pattern(inner, in_tuple)
	if kind == "tuple_pattern":
		items = [_build_pattern(c, in_tuple=True) for c in node.children]
		if sum(isinstance(p, RestPattern) for p in items) > 1:
			raise BodyError("`..` can only be used once per tuple pattern", loc)
		return TuplePattern(loc=loc, items=items)
	if kind == "rest_pattern":
		if not in_tuple:
			raise BodyError("`..` patterns are only allowed inside tuple patterns", loc)
		return RestPattern(loc=loc)
	if kind == "literal_pattern":
		negative = node.children[0].type == "MINUS"
		value = _literal_from_token(node.children[-1], loc)
		if negative:
			value = Literal(loc=loc, value=-value.value, kind=value.kind, suffix=value.suffix)
		return LiteralPattern(loc=loc, value=value)
	raise NotImplementedError(f"_build_pattern does not handle {kind}")


# Expressions -------------------------------------------------------------


def _build_call_args(node: Tree) -> List[Expr]:
	return [_build_expr(c) for c in node.children]


def _optional_args(children: list) -> List[Expr]:
	for child in children:
		if isinstance(child, Tree) and _name(child) == "call_args":
			return _build_call_args(child)
	return []


def _build_expr(node: Tree) -> Expr:
	kind = _name(node)
	loc = _loc(node)
	children = node.children
	if kind == "name":
		return Name(loc=loc, ident=children[0].value)
	if kind == "self_expr":
		return Name(loc=loc, ident="self")
	if kind == "path":
		return PathExpr(loc=loc, segments=[c.value for c in children])
	if kind in ("int_lit", "float_lit", "string_lit", "char_lit", "bool_lit"):
		return _literal_from_token(children[0], loc)
	if kind == "unit_lit":
		return Literal(loc=loc, value=None, kind="unit")
	if kind == "tuple_lit":
		return TupleLit(loc=loc, elements=[_build_expr(c) for c in children])
	if kind == "array_lit":
		return ArrayLit(loc=loc, elements=_optional_args(children))
	if kind == "macro_call":
		name = children[0].value
		if name not in _SUPPORTED_MACROS:
			raise BodyError(f"unsupported macro `{name}!`", loc)
		args = _optional_args(children[1:])
		if name == "vec":
			return ArrayLit(loc=loc, elements=args)
		return MacroCall(loc=loc, name=name, args=args)
	if kind == "call":
		func = _build_expr(children[0])
		args = _optional_args(children[1:])
		if isinstance(func, Field):
			return MethodCall(loc=loc, receiver=func.value, method=func.attr, args=args)
		return Call(loc=loc, func=func, args=args)
	if kind == "field":
		return Field(loc=loc, value=_build_expr(children[0]), attr=children[1].value)
	if kind == "tuple_field":
		digits, suffix = _split_suffix(children[1].value)
		if suffix is not None:
			raise BodyError(f"invalid tuple index `{children[1].value}`", loc)
		return TupleField(loc=loc, value=_build_expr(children[0]), index=int(digits))
	if kind == "index":
		return Index(loc=loc, value=_build_expr(children[0]), index=_build_expr(children[1]))
	if kind == "try_expr":
		return TryExpr(loc=loc, expr=_build_expr(children[0]))
	if kind == "await_expr":
		return AwaitExpr(loc=loc, value=_build_expr(children[0]))
	if kind == "unary":
		op_tok, operand = children
		return Unary(loc=loc, op=op_tok.value, operand=_build_expr(operand))
	if kind == "borrow":
		mutable = any(isinstance(c, Token) and c.type == "MUT" for c in children)
		return Borrow(loc=loc, value=_build_expr(children[-1]), mutable=mutable)
	if kind == "binary":
		left, op_tok, right = children
		return Binary(loc=loc, op=op_tok.value, left=_build_expr(left), right=_build_expr(right))
	if kind == "range":
		start, op_tok, end = children
		return Range(loc=loc, start=_build_expr(start), end=_build_expr(end), inclusive=op_tok.type == "DOTDOTEQ")
	if kind == "yield_expr":
		return YieldExpr(loc=loc, value=_build_expr(children[0]) if children else None)
	raise NotImplementedError(f"_build_expr does not handle {kind}")


def _literal_from_token(tok: Token, loc: Located) -> Literal:
	if tok.type == "INT":
		digits, suffix = _split_suffix(tok.value)
		return Literal(loc=loc, value=int(digits, 10), kind="int", suffix=suffix)
	if tok.type == "FLOAT":
		digits, suffix = _split_suffix(tok.value)
		return Literal(loc=loc, value=float(digits), kind="float", suffix=suffix)
	if tok.type == "STRING":
		return Literal(loc=loc, value=_decode_text(tok, loc), kind="str")
	if tok.type == "CHAR":
		return Literal(loc=loc, value=_decode_text(tok, loc), kind="char")
	return Literal(loc=loc, value=tok.type == "TRUE", kind="bool")


def _split_suffix(text: str) -> Tuple[str, Optional[str]]:
	text = text.replace("_", "")
	match = _NUMBER_SUFFIX.search(text)
	if match is None:
		return text, None
	return text[: match.start()], match.group(1)


_ESCAPE = re.compile(r"\\(?:u\{([0-9A-Fa-f][0-9A-Fa-f_]{0,7})\}|x([0-9A-Fa-f]{2})|(\n\s*)|(.))", re.S)
_SIMPLE_ESCAPES = {"n": "\n", "r": "\r", "t": "\t", "\\": "\\", "0": "\0", "'": "'", '"': '"'}


def _decode_text(tok: Token, loc: Located) -> str:
	"""
	Decode STRING/CHAR tokens with Rust escapes: `\\n \\r \\t \\\\ \\0 \\' \\"`,
	`\\xNN` (at most 0x7F), `\\u{NNNN}` and backslash-newline continuations.
	"""

	def replace(match: re.Match) -> str:
		code, byte, continuation, simple = match.groups()
		if code is not None:
			value = int(code.replace("_", ""), 16)
			if value > 0x10FFFF or 0xD800 <= value <= 0xDFFF:
				raise BodyError(f"invalid unicode escape `{match.group(0)}`", loc)
			return chr(value)
		if byte is not None:
			value = int(byte, 16)
			if value > 0x7F:
				raise BodyError(f"out of range hex escape `{match.group(0)}`", loc, notes=["use `\\u{..}` for characters above 0x7F"])
			return chr(value)
		if continuation is not None:
			return ""
		if simple in _SIMPLE_ESCAPES:
			return _SIMPLE_ESCAPES[simple]
		raise BodyError(f"unknown character escape `\\{simple}`", loc)

	return _ESCAPE.sub(replace, tok.value[1:-1])


# Locations ---------------------------------------------------------------


def _loc(tree: Tree) -> Located:
	meta = tree.meta
	return Located(
		line=getattr(meta, "line", 0),
		column=getattr(meta, "column", 0),
		end_line=getattr(meta, "end_line", None),
		end_column=getattr(meta, "end_column", None),
	)


def _loc_from_token(token: Token) -> Located:
	return Located(line=token.line, column=token.column, end_line=token.end_line, end_column=token.end_column)


def _name(node: Tree | Token) -> str:
	if isinstance(node, Tree):
		data = node.data
		if isinstance(data, Token):
			return data.value
		return data
	if isinstance(node, Token):
		return node.type
	return str(node)


__all__ = [
	"BodyError",
	"ItemSlice",
	"ItemSyntaxError",
	"SignatureError",
	"describe_unexpected",
	"parse_item",
	"scan_items",
]
