"""
Inliner for the functions the rewrite generated.

Two rewrites run over the whole program until neither applies:

	(function () { return x; })()            ->  x
	return (function () { a(); return b; })();  ->  a(); return b;

Only generated functions are touched, and only when they take no
parameters, have no name, declare nothing of their own and do not use
`this` or `arguments`. The second rewrite also needs the `return` to end
the function, or the spliced body to leave on every path.
"""

from __future__ import annotations

import logging

from thenify.nodes import (
	Arrow,
	Block,
	Call,
	Class,
	ExprNode,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Node,
	Return,
	StmtNode,
	This,
	Throw,
	Try,
	VarDecl,
)
from thenify.visitor import Transformer, children, walk

logger = logging.getLogger(__name__)


def _uses_context(tree: Node | list[StmtNode]) -> bool:
	"""Whether `this` or `arguments` is read here, arrows included."""
	pending: list[Node] = list(tree) if isinstance(tree, list) else [tree]
	while pending:
		node = pending.pop()
		if isinstance(node, This):
			return True
		if isinstance(node, Identifier) and node.name == "arguments":
			return True
		if isinstance(node, (Function, Class)):
			continue
		pending.extend(children(node))
	return False


def _inlinable(expr: ExprNode) -> Function | None:
	"""The generated function invoked by `expr`, if it may be inlined."""
	if not isinstance(expr, Call) or expr.args or expr.optional:
		return None
	fn = expr.callee
	if not isinstance(fn, Function):
		return None
	if not fn.generated or fn.name or fn.params or fn.is_async or fn.is_generator:
		return None
	if any(isinstance(n, (VarDecl, FunctionDecl)) for n in walk(fn.body)):
		return None
	if _uses_context(fn.body):
		return None
	return fn


def always_exits(stmts: list[StmtNode]) -> bool:
	if not stmts:
		return False
	last = stmts[-1]
	if isinstance(last, (Return, Throw)):
		return True
	if isinstance(last, If):
		return always_exits(last.then) and always_exits(last.else_)
	if isinstance(last, Block):
		return always_exits(last.body)
	return False


class Inliner(Transformer):
	changed: bool

	def __init__(self) -> None:
		self.changed = False

	def run(self, tree: Node) -> None:
		rounds = 0
		while True:
			self.changed = False
			self.visit(tree)
			rounds += 1
			if not self.changed:
				break
		logger.debug("Inlining settled after %d rounds", rounds)

	def visit_Call(self, node: Call) -> ExprNode:
		self.generic_visit(node)
		fn = _inlinable(node)
		if fn is None or len(fn.body) != 1:
			return node
		stmt = fn.body[0]
		if not isinstance(stmt, Return) or stmt.value is None:
			return node
		self.changed = True
		return stmt.value

	def visit_Function(self, node: Function) -> Function:
		self.generic_visit(node)
		node.body = self._inline_body(node.body, tail=True)
		return node

	def visit_Arrow(self, node: Arrow) -> Arrow:
		self.generic_visit(node)
		if isinstance(node.body, list):
			node.body = self._inline_body(node.body, tail=True)
		return node

	def _inline_body(self, stmts: list[StmtNode], tail: bool) -> list[StmtNode]:
		"""Splice returned calls of generated functions into `stmts`.

		tail means falling off the end of `stmts` ends the function.
		"""
		out: list[StmtNode] = []
		for index, stmt in enumerate(stmts):
			last = index == len(stmts) - 1
			if isinstance(stmt, Block):
				self.changed = True
				out.extend(self._inline_body(stmt.body, tail and last))
				continue
			if isinstance(stmt, Return) and stmt.value is not None:
				fn = _inlinable(stmt.value)
				if fn is not None and ((tail and last) or always_exits(fn.body)):
					self.changed = True
					out.extend(fn.body)
					continue
			if isinstance(stmt, If):
				stmt.then = self._inline_body(stmt.then, tail and last)
				stmt.else_ = self._inline_body(stmt.else_, tail and last)
			elif isinstance(stmt, Try):
				stmt.block = self._inline_body(stmt.block, tail and last)
				if stmt.handler is not None:
					stmt.handler = self._inline_body(stmt.handler, tail and last)
			out.append(stmt)
		return out


def inline_program(tree: Node) -> None:
	Inliner().run(tree)
