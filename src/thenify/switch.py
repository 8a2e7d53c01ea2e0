"""
Switch desugarer.

A switch that awaits, or that returns inside a function that awaits, is
rewritten into guarded ifs over three hoisted variables: the discriminant,
whether a case has matched (so later cases fall through), and whether a
`break` has run. The default clause always evaluates after every case
test, and the cases written after it are repeated inside its branch so
fallthrough out of the default still works.
"""

from __future__ import annotations

import logging
from copy import deepcopy

from thenify.errors import UnsupportedConstructError
from thenify.nodes import (
	FUNCTION_TYPES,
	LOOP_TYPES,
	Assign,
	Binary,
	Block,
	Break,
	Case,
	ExprNode,
	ExprStmt,
	Identifier,
	If,
	Labeled,
	Literal,
	Node,
	StmtNode,
	Switch,
	Try,
	Unary,
)
from thenify.scope import Scope
from thenify.visitor import Transformer, children, contains_await, contains_return

logger = logging.getLogger(__name__)


class _SwitchState:
	discriminant: str
	match: str
	broken: str
	label: str | None

	def __init__(self, scope: Scope, label: str | None) -> None:
		self.discriminant = scope.declare("discriminant")
		self.match = scope.declare("match")
		self.broken = scope.declare("brokenOut")
		self.label = label

	def set_broken(self) -> ExprStmt:
		return ExprStmt(Assign(Identifier(self.broken), Literal(True)))

	def set_match(self) -> ExprStmt:
		return ExprStmt(Assign(Identifier(self.match), Literal(True)))

	def not_broken(self) -> Unary:
		return Unary("!", Identifier(self.broken))

	def is_own_break(self, node: Node, nested_breakable: bool) -> bool:
		if not isinstance(node, Break):
			return False
		if node.label is None:
			return not nested_breakable
		return node.label == self.label


class SwitchDesugarer(Transformer):
	skip_functions = True

	scope: Scope
	awaits: bool

	def __init__(self, scope: Scope) -> None:
		self.scope = scope
		self.awaits = False

	def run(self, body: list[StmtNode]) -> list[StmtNode]:
		self.awaits = contains_await(body)
		return self.visit_list(body)

	def visit_Labeled(self, node: Labeled) -> Node | list[StmtNode]:
		if isinstance(node.body, Switch):
			result = self._switch(node.body, node.label)
			if isinstance(result, list):
				return result
			node.body = result
			return node
		return self.generic_visit(node)

	def visit_Switch(self, node: Switch) -> Switch | list[StmtNode]:
		return self._switch(node, None)

	def _switch(self, node: Switch, label: str | None) -> Switch | list[StmtNode]:
		self.generic_visit(node)
		# A return in a sync switch would only end the current step
		if contains_await(node) or (self.awaits and contains_return(node)):
			return self.desugar(node, label)
		return node

	def desugar(self, node: Switch, label: str | None = None) -> list[StmtNode]:
		state = _SwitchState(self.scope, label)
		bodies = [self._replace_breaks(case.body, state) for case in node.cases]

		out: list[StmtNode] = [
			ExprStmt(Assign(Identifier(state.discriminant), node.disc)),
			ExprStmt(Assign(Identifier(state.match), Literal(False))),
			ExprStmt(Assign(Identifier(state.broken), Literal(False))),
		]

		default_index = next(
			(i for i, case in enumerate(node.cases) if case.test is None), None
		)
		if default_index is None:
			for case, body in zip(node.cases, bodies, strict=True):
				out.append(self._case_if(case, body, state))
			logger.debug("Desugared switch with %d cases", len(node.cases))
			return out

		before = list(zip(node.cases[:default_index], bodies[:default_index]))
		after = list(zip(node.cases[default_index + 1 :], bodies[default_index + 1 :]))
		default_body = bodies[default_index]

		for case, body in before:
			out.append(self._case_if(case, body, state))

		if not after:
			out.append(If(state.not_broken(), default_body))
		else:
			# A match before the default falls into it and through the rest.
			fallthrough: list[StmtNode] = [If(state.not_broken(), deepcopy(default_body))]
			for _, body in after:
				fallthrough.append(If(state.not_broken(), deepcopy(body)))

			# Otherwise the later cases are tested first, and the default runs
			# only when none matched, falling through the cases after it.
			unmatched: list[StmtNode] = [
				self._case_if(case, deepcopy(body), state) for case, body in after
			]
			default_run: list[StmtNode] = [*deepcopy(default_body)]
			for _, body in after:
				default_run.append(If(state.not_broken(), deepcopy(body)))
			unmatched.append(
				If(
					Binary(state.not_broken(), "&&", Unary("!", Identifier(state.match))),
					default_run,
				)
			)
			out.append(If(Identifier(state.match), fallthrough, unmatched))
		logger.debug("Desugared switch with %d cases", len(node.cases))
		return out

	def _case_if(self, case: Case, body: list[StmtNode], state: _SwitchState) -> If:
		assert case.test is not None
		test: ExprNode = Binary(
			state.not_broken(),
			"&&",
			Binary(
				Identifier(state.match),
				"||",
				Binary(case.test, "===", Identifier(state.discriminant)),
			),
		)
		return If(test, [*body, state.set_match()])

	# --- Breaks -------------------------------------------------------------

	def _replace_breaks(
		self, stmts: list[StmtNode], state: _SwitchState, nested: bool = False
	) -> list[StmtNode]:
		"""Turn the switch's own breaks into `_brokenOut = true`.

		Statements after a break are dropped; statements after a statement
		that breaks somewhere inside run only when it did not.
		"""
		out: list[StmtNode] = []
		for index, stmt in enumerate(stmts):
			if state.is_own_break(stmt, nested):
				out.append(state.set_broken())
				return out
			if not self._breaks_inside(stmt, state, nested):
				out.append(stmt)
				continue
			out.append(self._replace_nested(stmt, state, nested))
			rest = self._replace_breaks(stmts[index + 1 :], state, nested)
			if rest:
				out.append(If(state.not_broken(), rest))
			return out
		return out

	def _breaks_inside(self, stmt: StmtNode, state: _SwitchState, nested: bool) -> bool:
		pending: list[tuple[Node, bool]] = [(stmt, nested)]
		while pending:
			node, inside = pending.pop()
			if state.is_own_break(node, inside):
				return True
			if isinstance(node, FUNCTION_TYPES):
				continue
			if isinstance(node, (*LOOP_TYPES, Switch)):
				inside = True
			pending.extend((child, inside) for child in children(node))
		return False

	def _replace_nested(self, stmt: StmtNode, state: _SwitchState, nested: bool) -> StmtNode:
		if isinstance(stmt, If):
			stmt.then = self._replace_breaks(stmt.then, state, nested)
			stmt.else_ = self._replace_breaks(stmt.else_, state, nested)
		elif isinstance(stmt, Try):
			stmt.block = self._replace_breaks(stmt.block, state, nested)
			if stmt.handler is not None:
				stmt.handler = self._replace_breaks(stmt.handler, state, nested)
			if stmt.finalizer is not None:
				stmt.finalizer = self._replace_breaks(stmt.finalizer, state, nested)
		elif isinstance(stmt, Block):
			stmt.body = self._replace_breaks(stmt.body, state, nested)
		elif isinstance(stmt, Labeled) and not isinstance(stmt.body, (*LOOP_TYPES, Switch)):
			stmt.body = Block(self._replace_breaks([stmt.body], state, nested))
		else:
			raise UnsupportedConstructError(
				f"break out of an awaiting switch from inside a nested {type(stmt).__name__}",
				self.scope.name,
			)
		return stmt


def desugar_switches(body: list[StmtNode], scope: Scope) -> list[StmtNode]:
	return SwitchDesugarer(scope).run(body)
