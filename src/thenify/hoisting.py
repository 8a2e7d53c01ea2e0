"""
Declaration hoisting for a function about to be rewritten.

Every `var`, `let` and `const` in the function body (not crossing into
nested functions) becomes a plain assignment, and the names move to the
function's hoisted `var` list. Function declarations move to the hoisted
function list. Running the pass twice finds nothing the second time.
"""

from __future__ import annotations

import logging

from thenify.errors import UnsupportedConstructError
from thenify.nodes import (
	Arrow,
	Assign,
	ClassDecl,
	Declarator,
	ExprNode,
	ExprStmt,
	For,
	ForIn,
	Function,
	FunctionDecl,
	Identifier,
	Raw,
	Sequence,
	StmtNode,
	VarDecl,
)
from thenify.scope import Scope, UidRegistry, binding_names
from thenify.visitor import Transformer

logger = logging.getLogger(__name__)


class _Hoister(Transformer):
	skip_functions = True

	scope: Scope
	params: set[str]

	def __init__(self, scope: Scope, params: set[str]) -> None:
		self.scope = scope
		self.params = params

	def _hoist_names(self, d: Declarator) -> ExprNode:
		"""Hoist the names `d` binds and return the target to assign to."""
		for name in d.names if d.pattern else [d.target]:
			if name not in self.params:
				self.scope.hoist_var(name)
		return Raw(d.target) if d.pattern else Identifier(d.target)

	def _assignments(self, decl: VarDecl) -> list[ExprNode]:
		assigns: list[ExprNode] = []
		for d in decl.declarators:
			target = self._hoist_names(d)
			if d.init is not None:
				assigns.append(Assign(target, d.init))
		return assigns

	def visit_VarDecl(self, node: VarDecl) -> list[StmtNode]:
		return [ExprStmt(a) for a in self._assignments(node)]

	def visit_For(self, node: For) -> For:
		if isinstance(node.init, VarDecl):
			assigns = self._assignments(node.init)
			if not assigns:
				node.init = None
			elif len(assigns) == 1:
				node.init = assigns[0]
			else:
				node.init = Sequence(assigns)
		node.body = self.visit_list(node.body)
		return node

	def visit_ForIn(self, node: ForIn) -> ForIn:
		if isinstance(node.left, VarDecl):
			d = node.left.declarators[0]
			if d.pattern and not node.of:
				raise UnsupportedConstructError(
					f"destructuring for-in key '{d.target}'", self.scope.name
				)
			node.left = self._hoist_names(d)
		node.body = self.visit_list(node.body)
		return node

	def visit_FunctionDecl(self, node: FunctionDecl) -> None:
		self.scope.hoist_function(node)
		return None

	def visit_ClassDecl(self, node: ClassDecl) -> ExprStmt:
		name = node.cls.name
		assert name is not None, "class declarations are always named"
		self.scope.hoist_var(name)
		return ExprStmt(Assign(Identifier(name), node.cls))


def hoist_function(fn: Function | Arrow, registry: UidRegistry) -> Scope:
	"""Hoist the declarations of `fn` and return its new Scope."""
	assert isinstance(fn.body, list), "expression bodies are normalized first"
	name = fn.name if isinstance(fn, Function) else None
	scope = Scope(registry, name=name)
	params = {n for p in fn.params for n in binding_names(p)}
	scope.bindings |= params
	fn.body = _Hoister(scope, params).visit_list(fn.body)
	logger.debug(
		"Hoisted %d variables and %d functions in %s",
		len(scope.hoisted_vars),
		len(scope.hoisted_functions),
		name or "<anonymous>",
	)
	return scope
