"""
Block normalization for async functions.

Control bodies are statement lists by construction, so what remains is:
expression-bodied arrows get a block with an explicit return, bare nested
blocks are spliced into their enclosing list, and `this`/`arguments` are
captured before the first continuation runs. Constructs that cannot be
rewritten are refused here, before anything is changed.
"""

from __future__ import annotations

from thenify.errors import UnsupportedConstructError
from thenify.nodes import (
	LOOP_TYPES,
	Arrow,
	Assign,
	Block,
	Call,
	Class,
	ExprStmt,
	ForIn,
	Function,
	Identifier,
	Labeled,
	Node,
	Prop,
	Return,
	StmtNode,
	Super,
	Switch,
	This,
)
from thenify.scope import Scope
from thenify.visitor import Transformer, contains_await, jump_labels


def ensure_block(fn: Function | Arrow) -> None:
	"""Give an expression-bodied arrow a block body: x => y becomes x => { return y; }"""
	if not isinstance(fn.body, list):
		fn.body = [Return(fn.body)]


class _ContextCapture(Transformer):
	"""Replaces `this` and `arguments` with captured variables.

	Arrows share their parent's `this` and `arguments`, so they are entered;
	ordinary functions and classes are not.
	"""

	scope: Scope
	_names: dict[str, str]

	def __init__(self, scope: Scope) -> None:
		self.scope = scope
		self._names = {}

	def _captured(self, kind: str) -> Identifier:
		if kind not in self._names:
			name = self.scope.declare(kind)
			self._names[kind] = name
			value = This() if kind == "this" else Identifier("arguments")
			self.scope.prelude.append(ExprStmt(Assign(Identifier(name), value)))
		return Identifier(self._names[kind])

	def visit_Function(self, node: Function) -> Function:
		return node

	def visit_Class(self, node: Class) -> Class:
		return node

	def visit_This(self, node: This) -> Identifier:
		return self._captured("this")

	def visit_Identifier(self, node: Identifier) -> Identifier:
		if node.name == "arguments":
			return self._captured("arguments")
		return node

	def visit_Super(self, node: Super) -> Node:
		raise UnsupportedConstructError("'super'", self.scope.name)

	def visit_Prop(self, node: Prop) -> Prop:
		if node.computed:
			node.key = self.visit(node.key)
		value = self.visit(node.value)
		if node.shorthand and value is not node.value:
			node.shorthand = False
		node.value = value
		return node


class _BlockFlattener(Transformer):
	skip_functions = True

	scope: Scope

	def __init__(self, scope: Scope) -> None:
		self.scope = scope

	def visit_Block(self, node: Block) -> list[StmtNode]:
		return self.visit_list(node.body)

	def visit_Labeled(self, node: Labeled) -> Node | list[StmtNode]:
		if isinstance(node.body, (*LOOP_TYPES, Switch)):
			return self.generic_visit(node)
		if node.label not in jump_labels(node.body):
			return self.visit(node.body)
		if contains_await(node.body):
			raise UnsupportedConstructError(
				f"jump to labeled block '{node.label}' across an await", self.scope.name
			)
		return self.generic_visit(node)

	def visit_Call(self, node: Call) -> Call:
		if isinstance(node.callee, Identifier) and node.callee.name == "eval":
			raise UnsupportedConstructError("'eval'", self.scope.name)
		return self.generic_visit(node)  # pyright: ignore[reportReturnType]

	def visit_ForIn(self, node: ForIn) -> ForIn:
		if node.is_await:
			raise UnsupportedConstructError("'for await'", self.scope.name)
		return self.generic_visit(node)  # pyright: ignore[reportReturnType]


def normalize_function(fn: Function | Arrow, scope: Scope) -> None:
	"""Flatten blocks, capture `this`/`arguments`, and refuse what cannot be rewritten."""
	assert isinstance(fn.body, list)
	if isinstance(fn, Function) and fn.is_generator:
		raise UnsupportedConstructError("async generator", scope.name)
	if not (isinstance(fn, Function) and fn.generated):
		fn.body = _ContextCapture(scope).visit_list(fn.body)
	fn.body = _BlockFlattener(scope).visit_list(fn.body)
