"""
JavaScript parser built on tree-sitter.

The concrete syntax tree from tree-sitter-javascript is converted into the
node dataclasses of `thenify.nodes`. Comments are dropped. Parameters,
destructuring patterns, regexes and a few rarely rewritten statements are
kept as source text.
"""

from __future__ import annotations

import logging
from typing import Literal as Lit
from typing import cast

from tree_sitter import Node as TSNode
from tree_sitter_language_pack import get_parser

from thenify.errors import ParseError, UnsupportedSyntaxError
from thenify.nodes import (
	Array,
	Arrow,
	Assign,
	Await,
	Binary,
	Block,
	Break,
	Call,
	Case,
	Class,
	ClassDecl,
	Continue,
	Declarator,
	DoWhile,
	Export,
	ExprNode,
	ExprStmt,
	Field,
	For,
	ForIn,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Labeled,
	Literal,
	Member,
	Method,
	New,
	Object,
	Program,
	Prop,
	Raw,
	Return,
	Sequence,
	Spread,
	StmtNode,
	Subscript,
	Super,
	Switch,
	Template,
	Ternary,
	This,
	Throw,
	Try,
	Unary,
	Undefined,
	Update,
	VarDecl,
	Verbatim,
	While,
	Yield,
)

logger = logging.getLogger(__name__)

_VERBATIM_STATEMENTS = frozenset({"import_statement", "debugger_statement", "hash_bang_line"})
_PATTERNS = frozenset({"object_pattern", "array_pattern", "assignment_pattern"})


def _named(node: TSNode) -> list[TSNode]:
	return [c for c in node.named_children if c.type != "comment"]


def _has_token(node: TSNode, token: str, before: TSNode | None = None) -> bool:
	"""Whether an anonymous `token` child occurs (before `before`, if given)."""
	for child in node.children:
		if before is not None and child.start_byte >= before.start_byte:
			return False
		if not child.is_named and child.type == token:
			return True
	return False


def _field(node: TSNode, name: str) -> TSNode | None:
	child = node.child_by_field_name(name)
	if child is None or not child.is_named:
		return None
	return child


def _first_error(node: TSNode) -> TSNode | None:
	pending = [node]
	while pending:
		current = pending.pop()
		if current.type == "ERROR" or current.is_missing:
			return current
		if current.has_error:
			pending.extend(reversed(current.children))
	return None


class Parser:
	"""Converts one tree-sitter syntax tree into a Program."""

	source: bytes

	def __init__(self, source: bytes) -> None:
		self.source = source

	def text(self, node: TSNode) -> str:
		return self.source[node.start_byte : node.end_byte].decode("utf-8")

	def unsupported(self, node: TSNode) -> UnsupportedSyntaxError:
		return UnsupportedSyntaxError(node.type, node.start_point[0] + 1)

	def convert_program(self, root: TSNode) -> Program:
		return Program(self.convert_stmts(_named(root)))

	# --- Statements ----------------------------------------------------------

	def convert_stmts(self, nodes: list[TSNode]) -> list[StmtNode]:
		out: list[StmtNode] = []
		for node in nodes:
			if node.type == "comment" or node.type == "empty_statement":
				continue
			out.append(self.convert_stmt(node))
		return out

	def convert_body(self, node: TSNode | None) -> list[StmtNode]:
		"""Statements of a control body; a lone statement becomes a one-item list."""
		if node is None:
			return []
		if node.type == "statement_block":
			return self.convert_stmts(_named(node))
		return self.convert_stmts([node])

	def convert_stmt(self, node: TSNode) -> StmtNode:
		kind = node.type
		if kind == "expression_statement":
			return ExprStmt(self.convert_expr(_named(node)[0]))
		if kind in ("variable_declaration", "lexical_declaration"):
			return self._convert_declaration(node)
		if kind in ("function_declaration", "generator_function_declaration"):
			return FunctionDecl(self._convert_function(node))
		if kind == "class_declaration":
			return ClassDecl(self._convert_class(node))
		if kind == "return_statement":
			args = _named(node)
			return Return(self.convert_expr(args[0]) if args else None)
		if kind == "throw_statement":
			return Throw(self.convert_expr(_named(node)[0]))
		if kind == "if_statement":
			return self._convert_if(node)
		if kind == "while_statement":
			return While(
				self.convert_expr(self._required(node, "condition")),
				self.convert_body(_field(node, "body")),
			)
		if kind == "do_statement":
			return DoWhile(
				self.convert_body(_field(node, "body")),
				self.convert_expr(self._required(node, "condition")),
			)
		if kind == "for_statement":
			return self._convert_for(node)
		if kind == "for_in_statement":
			return self._convert_for_in(node)
		if kind == "switch_statement":
			return self._convert_switch(node)
		if kind == "try_statement":
			return self._convert_try(node)
		if kind == "break_statement":
			label = _field(node, "label")
			return Break(self.text(label) if label is not None else None)
		if kind == "continue_statement":
			label = _field(node, "label")
			return Continue(self.text(label) if label is not None else None)
		if kind == "labeled_statement":
			label = self.text(self._required(node, "label"))
			body = self._required(node, "body")
			if body.type == "empty_statement":
				return Labeled(label, Block([]))
			return Labeled(label, self.convert_stmt(body))
		if kind == "statement_block":
			return Block(self.convert_stmts(_named(node)))
		if kind == "export_statement":
			return self._convert_export(node)
		if kind in _VERBATIM_STATEMENTS:
			return Verbatim(self.text(node))
		raise self.unsupported(node)

	def _required(self, node: TSNode, name: str) -> TSNode:
		child = _field(node, name)
		if child is None:
			raise self.unsupported(node)
		return child

	def _convert_declaration(self, node: TSNode) -> VarDecl:
		if node.type == "variable_declaration":
			kind = "var"
		else:
			kind_node = node.child_by_field_name("kind")
			kind = self.text(kind_node) if kind_node is not None else node.children[0].type
		declarators: list[Declarator] = []
		for child in _named(node):
			if child.type != "variable_declarator":
				continue
			name = self._required(child, "name")
			value = _field(child, "value")
			declarators.append(
				Declarator(
					self.text(name),
					self.convert_expr(value) if value is not None else None,
					pattern=name.type in _PATTERNS,
					names=self.pattern_names(name) if name.type in _PATTERNS else [],
				)
			)
		return VarDecl(cast(Lit["var", "let", "const"], kind), declarators)

	def pattern_names(self, node: TSNode) -> list[str]:
		"""Names bound by a destructuring pattern, in source order.

		Keys and default values are skipped. Defaults are kept as source
		text, so an await inside one cannot be rewritten.
		"""
		kind = node.type
		if kind in ("identifier", "shorthand_property_identifier_pattern"):
			return [self.text(node)]
		if kind == "pair_pattern":
			return self.pattern_names(self._required(node, "value"))
		if kind in ("assignment_pattern", "object_assignment_pattern"):
			default = _field(node, "right")
			if default is not None:
				self._refuse_await(default)
			return self.pattern_names(self._required(node, "left"))
		if kind in ("object_pattern", "array_pattern", "rest_pattern"):
			return [n for c in _named(node) for n in self.pattern_names(c)]
		return []

	def _refuse_await(self, node: TSNode) -> None:
		pending = [node]
		while pending:
			current = pending.pop()
			if current.type == "await_expression":
				raise self.unsupported(current)
			pending.extend(current.named_children)

	def _convert_if(self, node: TSNode) -> If:
		cond = self.convert_expr(self._required(node, "condition"))
		then = self.convert_body(_field(node, "consequence"))
		alternative = _field(node, "alternative")
		else_: list[StmtNode] = []
		if alternative is not None:
			# else_clause wraps the statement after `else`
			inner = _named(alternative)
			else_ = self.convert_body(inner[0] if inner else None)
		return If(cond, then, else_)

	def _convert_for(self, node: TSNode) -> For:
		init: VarDecl | ExprNode | None = None
		initializer = _field(node, "initializer")
		if initializer is not None:
			if initializer.type in ("variable_declaration", "lexical_declaration"):
				init = self._convert_declaration(initializer)
			elif initializer.type == "expression_statement":
				init = self.convert_expr(_named(initializer)[0])
			elif initializer.type != "empty_statement":
				init = self.convert_expr(initializer)

		test: ExprNode | None = None
		condition = _field(node, "condition")
		if condition is not None:
			if condition.type == "expression_statement":
				test = self.convert_expr(_named(condition)[0])
			elif condition.type != "empty_statement":
				test = self.convert_expr(condition)

		increment = _field(node, "increment")
		update = self.convert_expr(increment) if increment is not None else None
		return For(init, test, update, self.convert_body(_field(node, "body")))

	def _convert_for_in(self, node: TSNode) -> ForIn:
		left_node = self._required(node, "left")
		kind_node = node.child_by_field_name("kind")
		left: VarDecl | ExprNode
		if kind_node is not None:
			kind = cast(Lit["var", "let", "const"], self.text(kind_node))
			pattern = left_node.type in _PATTERNS
			names = self.pattern_names(left_node) if pattern else []
			left = VarDecl(
				kind, [Declarator(self.text(left_node), pattern=pattern, names=names)]
			)
		else:
			left = self.convert_target(left_node)
		operator = node.child_by_field_name("operator")
		of = operator is not None and self.text(operator) == "of"
		return ForIn(
			left,
			self.convert_expr(self._required(node, "right")),
			self.convert_body(_field(node, "body")),
			of=of,
			is_await=_has_token(node, "await"),
		)

	def _convert_switch(self, node: TSNode) -> Switch:
		disc = self.convert_expr(self._required(node, "value"))
		cases: list[Case] = []
		body = self._required(node, "body")
		for clause in _named(body):
			if clause.type == "switch_case":
				test_node = self._required(clause, "value")
				stmts = [c for c in _named(clause) if c.id != test_node.id]
				cases.append(Case(self.convert_expr(test_node), self.convert_stmts(stmts)))
			elif clause.type == "switch_default":
				cases.append(Case(None, self.convert_stmts(_named(clause))))
		return Switch(disc, cases)

	def _convert_try(self, node: TSNode) -> Try:
		block = self.convert_body(_field(node, "body"))
		param: str | None = None
		handler: list[StmtNode] | None = None
		catch = _field(node, "handler")
		if catch is not None:
			param_node = _field(catch, "parameter")
			param = self.text(param_node) if param_node is not None else None
			handler = self.convert_body(_field(catch, "body"))
		finalizer: list[StmtNode] | None = None
		finally_clause = _field(node, "finalizer")
		if finally_clause is not None:
			finalizer = self.convert_body(_field(finally_clause, "body"))
		return Try(block, param, handler, finalizer)

	def _convert_export(self, node: TSNode) -> StmtNode:
		default = _has_token(node, "default")
		declaration = _field(node, "declaration")
		if declaration is not None:
			return Export(self.convert_stmt(declaration), default=default)
		value = _field(node, "value")
		if value is not None and default:
			return Export(self.convert_expr(value), default=True)
		# export { a, b }, export * from "x"
		return Verbatim(self.text(node))

	# --- Functions and classes ----------------------------------------------

	def _params(self, node: TSNode) -> list[str]:
		params = _field(node, "parameters")
		if params is not None:
			return [self.text(p) for p in _named(params)]
		single = _field(node, "parameter")
		return [self.text(single)] if single is not None else []

	def _convert_function(self, node: TSNode) -> Function:
		name = _field(node, "name")
		return Function(
			self._params(node),
			self.convert_body(_field(node, "body")),
			name=self.text(name) if name is not None else None,
			is_async=_has_token(node, "async", before=_field(node, "parameters")),
			is_generator=_has_token(node, "*", before=_field(node, "parameters")),
		)

	def _convert_arrow(self, node: TSNode) -> Arrow:
		body_node = self._required(node, "body")
		body: list[StmtNode] | ExprNode
		if body_node.type == "statement_block":
			body = self.convert_stmts(_named(body_node))
		else:
			body = self.convert_expr(body_node)
		return Arrow(self._params(node), body, is_async=_has_token(node, "async"))

	def _convert_key(self, node: TSNode) -> tuple[ExprNode, bool]:
		"""A property or method key, and whether it is computed."""
		if node.type == "computed_property_name":
			return self.convert_expr(_named(node)[0]), True
		if node.type in ("string", "number"):
			return self.convert_expr(node), False
		return Identifier(self.text(node)), False

	def _convert_method(self, node: TSNode) -> tuple[ExprNode, bool, Function, str]:
		name = self._required(node, "name")
		key, computed = self._convert_key(name)
		kind = "method"
		if _has_token(node, "get", before=name):
			kind = "get"
		elif _has_token(node, "set", before=name):
			kind = "set"
		fn = Function(
			self._params(node),
			self.convert_body(_field(node, "body")),
			is_async=_has_token(node, "async", before=name),
			is_generator=_has_token(node, "*", before=name),
		)
		return key, computed, fn, kind

	def _convert_class(self, node: TSNode) -> Class:
		name = _field(node, "name")
		superclass: ExprNode | None = None
		members: list[Method | Field] = []
		for child in _named(node):
			if child.type == "class_heritage":
				heritage = _named(child)
				superclass = self.convert_expr(heritage[0])
			elif child.type == "class_body":
				members = self._convert_class_body(child)
		return Class(self.text(name) if name is not None else None, superclass, members)

	def _convert_class_body(self, node: TSNode) -> list[Method | Field]:
		members: list[Method | Field] = []
		for child in _named(node):
			if child.type == "method_definition":
				key, computed, fn, kind = self._convert_method(child)
				name = self._required(child, "name")
				if kind == "method" and isinstance(key, Identifier) and key.name == "constructor":
					kind = "constructor"
				members.append(
					Method(
						key,
						fn,
						cast(Lit["constructor", "method", "get", "set"], kind),
						static=_has_token(child, "static", before=name),
						computed=computed,
					)
				)
			elif child.type in ("field_definition", "public_field_definition"):
				prop = self._required(child, "property")
				key, computed = self._convert_key(prop)
				value = _field(child, "value")
				members.append(
					Field(
						key,
						self.convert_expr(value) if value is not None else None,
						static=_has_token(child, "static", before=prop),
						computed=computed,
					)
				)
			elif child.type != "decorator":
				raise self.unsupported(child)
		return members

	# --- Expressions ---------------------------------------------------------

	def convert_target(self, node: TSNode) -> ExprNode:
		"""An assignment or loop target: a name, a member, or a kept pattern."""
		if node.type in _PATTERNS:
			return Raw(self.text(node))
		return self.convert_expr(node)

	def convert_expr(self, node: TSNode) -> ExprNode:
		kind = node.type
		if kind in ("identifier", "property_identifier", "shorthand_property_identifier"):
			return Identifier(self.text(node))
		if kind == "number":
			return self._convert_number(node)
		if kind == "string":
			return self._convert_string(node)
		if kind in ("true", "false"):
			return Literal(kind == "true")
		if kind == "null":
			return Literal(None)
		if kind == "undefined":
			return Undefined()
		if kind == "this":
			return This()
		if kind == "super":
			return Super()
		if kind in ("regex", "meta_property", "import"):
			return Raw(self.text(node))
		if kind == "parenthesized_expression":
			return self.convert_expr(_named(node)[0])
		if kind == "template_string":
			return self._convert_template(node)
		if kind == "array":
			return self._convert_array(node)
		if kind == "object":
			return self._convert_object(node)
		if kind == "member_expression":
			obj = self._required(node, "object")
			prop = self._required(node, "property")
			return Member(
				self.convert_expr(obj),
				self.text(prop),
				optional=self._optional(node, prop),
			)
		if kind == "subscript_expression":
			index = self._required(node, "index")
			return Subscript(
				self.convert_expr(self._required(node, "object")),
				self.convert_expr(index),
				optional=self._optional(node, index),
			)
		if kind == "call_expression":
			return self._convert_call(node)
		if kind == "new_expression":
			args = _field(node, "arguments")
			return New(
				self.convert_expr(self._required(node, "constructor")),
				self._arguments(args) if args is not None else [],
			)
		if kind == "await_expression":
			return Await(self.convert_expr(_named(node)[0]))
		if kind == "unary_expression":
			operator = self.text(self._operator(node))
			return Unary(operator, self.convert_expr(self._required(node, "argument")))
		if kind == "update_expression":
			operator = self._operator(node)
			prefix = operator.start_byte < self._required(node, "argument").start_byte
			return Update(
				cast(Lit["++", "--"], self.text(operator)),
				self.convert_expr(self._required(node, "argument")),
				prefix=prefix,
			)
		if kind == "binary_expression":
			return Binary(
				self.convert_expr(self._required(node, "left")),
				self.text(self._operator(node)),
				self.convert_expr(self._required(node, "right")),
			)
		if kind == "assignment_expression":
			return Assign(
				self.convert_target(self._required(node, "left")),
				self.convert_expr(self._required(node, "right")),
			)
		if kind == "augmented_assignment_expression":
			return Assign(
				self.convert_target(self._required(node, "left")),
				self.convert_expr(self._required(node, "right")),
				op=self.text(self._operator(node)),
			)
		if kind == "ternary_expression":
			return Ternary(
				self.convert_expr(self._required(node, "condition")),
				self.convert_expr(self._required(node, "consequence")),
				self.convert_expr(self._required(node, "alternative")),
			)
		if kind == "sequence_expression":
			return Sequence([self.convert_expr(n) for n in self._sequence_items(node)])
		if kind == "spread_element":
			return Spread(self.convert_expr(_named(node)[0]))
		if kind == "yield_expression":
			args = _named(node)
			return Yield(
				self.convert_expr(args[0]) if args else None,
				delegate=_has_token(node, "*"),
			)
		if kind in ("function_expression", "function", "generator_function"):
			return self._convert_function(node)
		if kind == "arrow_function":
			return self._convert_arrow(node)
		if kind == "class":
			return self._convert_class(node)
		if kind in _PATTERNS:
			return Raw(self.text(node))
		raise self.unsupported(node)

	def _operator(self, node: TSNode) -> TSNode:
		operator = node.child_by_field_name("operator")
		if operator is None:
			raise self.unsupported(node)
		return operator

	def _optional(self, node: TSNode, before: TSNode) -> bool:
		for child in node.children:
			if child.start_byte >= before.start_byte:
				break
			if child.type == "optional_chain":
				return True
		return False

	def _sequence_items(self, node: TSNode) -> list[TSNode]:
		items: list[TSNode] = []
		for child in _named(node):
			if child.type == "sequence_expression":
				items.extend(self._sequence_items(child))
			else:
				items.append(child)
		return items

	def _arguments(self, node: TSNode) -> list[ExprNode]:
		return [self.convert_expr(arg) for arg in _named(node)]

	def _convert_call(self, node: TSNode) -> ExprNode:
		callee = self._required(node, "function")
		args = self._required(node, "arguments")
		if args.type == "template_string":
			# Tagged templates keep their source form
			return Raw(self.text(node))
		return Call(
			self.convert_expr(callee),
			self._arguments(args),
			optional=self._optional(node, args),
		)

	def _convert_number(self, node: TSNode) -> Literal:
		raw = self.text(node)
		value: int | float | str
		try:
			value = int(raw.replace("_", ""), 0)
		except ValueError:
			try:
				value = float(raw.replace("_", ""))
			except ValueError:
				value = raw
		return Literal(value, raw)

	def _convert_string(self, node: TSNode) -> Literal:
		raw = self.text(node)
		# Escapes stay as written; value is only used for property names
		return Literal(raw[1:-1], raw)

	def _convert_template(self, node: TSNode) -> Template:
		parts: list[str | ExprNode] = []
		cursor = node.start_byte + 1
		for child in node.named_children:
			if child.type != "template_substitution":
				continue
			parts.append(self.source[cursor : child.start_byte].decode("utf-8"))
			parts.append(self.convert_expr(_named(child)[0]))
			cursor = child.end_byte
		parts.append(self.source[cursor : node.end_byte - 1].decode("utf-8"))
		return Template(parts)

	def _convert_array(self, node: TSNode) -> Array:
		elements: list[ExprNode] = []
		expecting = True
		for child in node.children:
			if child.type in ("[", "]", "comment"):
				continue
			if child.type == ",":
				if expecting:
					# A hole, as in [a, , b]
					elements.append(Raw(""))
				expecting = True
				continue
			elements.append(self.convert_expr(child))
			expecting = False
		return Array(elements)

	def _convert_object(self, node: TSNode) -> Object:
		props: list[Prop | Spread] = []
		for child in _named(node):
			if child.type == "pair":
				key, computed = self._convert_key(self._required(child, "key"))
				value = self.convert_expr(self._required(child, "value"))
				props.append(Prop(key, value, computed=computed))
			elif child.type == "shorthand_property_identifier":
				name = self.text(child)
				props.append(Prop(Identifier(name), Identifier(name), shorthand=True))
			elif child.type == "spread_element":
				props.append(Spread(self.convert_expr(_named(child)[0])))
			elif child.type == "method_definition":
				key, computed, fn, kind = self._convert_method(child)
				props.append(
					Prop(
						key,
						fn,
						computed=computed,
						kind=cast(Lit["init", "method", "get", "set"], kind),
					)
				)
			else:
				raise self.unsupported(child)
		return Object(props)


def parse(code: str) -> Program:
	"""Parse JavaScript source into a Program."""
	source = code.encode("utf-8")
	tree = get_parser("javascript").parse(source)
	root = tree.root_node
	if root.has_error:
		error = _first_error(root) or root
		line, column = error.start_point[0] + 1, error.start_point[1] + 1
		kind = "Missing token" if error.is_missing else "Syntax error"
		raise ParseError(kind, line, column)
	program = Parser(source).convert_program(root)
	logger.debug("Parsed %d top-level statements", len(program.body))
	return program
