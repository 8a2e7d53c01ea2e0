"""
Loop recursifier.

A loop that awaits becomes a generated async function that runs one
iteration and then awaits a call to itself. The loop statement becomes a
call to that function:

	while (test) { body }

becomes

	async function _recursive() {
	  if (test) {
	    body
	    return await _recursive();
	  }
	}
	await _recursive();

Loops are rewritten innermost first. A loop that does not await but holds a
`return` is rewritten as well when the function awaits anywhere, since the
return would otherwise end only the current step.

A loop whose body can leave the whole function (a `return`, or a jump to
an enclosing labeled loop) is *discriminating*: its function returns itself
as a sentinel when the loop simply ends, and the call site passes any other
value on as the function's own exit.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from dataclasses import dataclass

from thenify.errors import UnsupportedConstructError
from thenify.nodes import (
	LOOP_TYPES,
	Array,
	Assign,
	Await,
	Binary,
	Block,
	Break,
	Call,
	Continue,
	DoWhile,
	ExprNode,
	ExprStmt,
	For,
	ForIn,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Labeled,
	Literal,
	Member,
	Return,
	StmtNode,
	Switch,
	Try,
	While,
)
from thenify.scope import Scope
from thenify.visitor import (
	Transformer,
	contains_await,
	contains_return,
	defined_labels,
	jump_labels,
)

logger = logging.getLogger(__name__)

Loop = While | DoWhile | For | ForIn


@dataclass
class _LoopContext:
	"""How jumps targeting one loop are spelled inside its function."""

	fn_id: str
	discriminating: bool
	update: ExprNode | None = None
	retest: ExprNode | None = None

	def self_call(self) -> Return:
		return Return(Await(Call(Identifier(self.fn_id), [])))

	def exit(self) -> Return:
		if self.discriminating:
			return Return(Identifier(self.fn_id))
		return Return()

	def repeat(self) -> list[StmtNode]:
		stmts: list[StmtNode] = []
		if self.update is not None:
			stmts.append(ExprStmt(deepcopy(self.update)))
		if self.retest is not None:
			stmts.append(If(deepcopy(self.retest), [self.self_call()]))
			stmts.append(self.exit())
		else:
			stmts.append(self.self_call())
		return stmts


class LoopRecursifier(Transformer):
	skip_functions = True

	scope: Scope
	awaits: bool
	_labeled_loops: dict[str, Loop]

	def __init__(self, scope: Scope) -> None:
		self.scope = scope
		self.awaits = False
		self._labeled_loops = {}

	def run(self, body: list[StmtNode]) -> list[StmtNode]:
		self.awaits = contains_await(body)
		return self.visit_list(body)

	# --- Traversal ----------------------------------------------------------

	def visit_Labeled(self, node: Labeled) -> Labeled | list[StmtNode]:
		if not isinstance(node.body, LOOP_TYPES):
			return self.generic_visit(node)  # pyright: ignore[reportReturnType]
		self._labeled_loops[node.label] = node.body
		try:
			result = self._loop(node.body, node.label)
		finally:
			del self._labeled_loops[node.label]
		if isinstance(result, list):
			return result
		node.body = result
		return node

	def visit_While(self, node: While) -> StmtNode | list[StmtNode]:
		return self._loop(node, None)

	def visit_DoWhile(self, node: DoWhile) -> StmtNode | list[StmtNode]:
		return self._loop(node, None)

	def visit_For(self, node: For) -> StmtNode | list[StmtNode]:
		return self._loop(node, None)

	def visit_ForIn(self, node: ForIn) -> StmtNode | list[StmtNode]:
		return self._loop(node, None)

	def _loop(self, node: Loop, label: str | None) -> Loop | list[StmtNode]:
		self.generic_visit(node)
		# A return in a sync loop would only end the current step
		if contains_await(node) or (self.awaits and contains_return(node)):
			return self._recursify(node, label)
		return node

	# --- Rewriting ----------------------------------------------------------

	def _recursify(self, node: Loop, label: str | None) -> list[StmtNode]:
		if label is not None:
			fn_id = self.scope.label_id(label)
		else:
			fn_id = self.scope.generate_uid("recursive")

		prefix: list[StmtNode] = []
		if isinstance(node, ForIn):
			prefix, node = self._enumeration_to_while(node)

		update: ExprNode | None = None
		retest: ExprNode | None = None
		if isinstance(node, For):
			if node.init is not None:
				assert isinstance(node.init, ExprNode), "declarations are hoisted first"
				prefix.append(ExprStmt(node.init))
			update = node.update
			test = node.test if node.test is not None else Literal(True)
		elif isinstance(node, DoWhile):
			retest = node.cond
			test = node.cond
		else:
			test = node.cond

		inner_labels = defined_labels(node.body)
		outer_jumps = {
			lbl for lbl in jump_labels(node.body) if lbl != label and lbl not in inner_labels
		}
		discriminating = contains_return(node.body) or bool(outer_jumps)
		ctx = _LoopContext(fn_id, discriminating, update, retest)
		body = self._replace_jumps(node.body, ctx, label, inner_labels, False, False)

		fn_body: list[StmtNode]
		if isinstance(node, DoWhile):
			fn_body = [*body, *ctx.repeat()]
		else:
			fn_body = [If(test, [*body, *ctx.repeat()])]
			if discriminating:
				fn_body.append(ctx.exit())

		fn = Function(
			[],
			fn_body,
			name=fn_id,
			is_async=True,
			generated=True,
			loose=not discriminating,
		)
		self.scope.hoist_function(FunctionDecl(fn))
		logger.debug(
			"Recursified %s loop into %s (discriminating=%s)",
			type(node).__name__,
			fn_id,
			discriminating,
		)
		if not discriminating:
			return [*prefix, ExprStmt(Await(Call(Identifier(fn_id), [])))]
		return [*prefix, *sentinel_call_site(fn_id, self.scope)]

	def _enumeration_to_while(self, node: ForIn) -> tuple[list[StmtNode], While]:
		"""Drain the keys or items up front, then pop one per iteration.

		The buffer is reversed so that popping yields the original order.
		A for-in key is skipped when it was deleted from the object meanwhile.
		"""
		assert isinstance(node.left, ExprNode), "declarations are hoisted first"
		items = Identifier(self.scope.declare("items"))
		prefix: list[StmtNode] = []
		if node.of:
			prefix.append(
				ExprStmt(
					Assign(items, Call(Member(Identifier("Array"), "from"), [node.right]))
				)
			)
			body = [ExprStmt(Assign(node.left, _pop(items))), *node.body]
		else:
			obj = Identifier(self.scope.declare("obj"))
			item = Identifier(self.scope.declare("item"))
			prefix.append(ExprStmt(Assign(obj, node.right)))
			prefix.append(ExprStmt(Assign(items, Array([]))))
			prefix.append(
				ForIn(
					item,
					obj,
					[ExprStmt(Call(Member(items, "push"), [item]))],
				)
			)
			body = [
				ExprStmt(Assign(node.left, _pop(items))),
				If(Binary(deepcopy(node.left), "in", obj), node.body),
			]
		prefix.append(ExprStmt(Call(Member(items, "reverse"), [])))
		return prefix, While(Member(items, "length"), body)

	# --- Jumps --------------------------------------------------------------

	def _replace_jumps(
		self,
		stmts: list[StmtNode],
		ctx: _LoopContext,
		label: str | None,
		inner_labels: set[str],
		in_loop: bool,
		in_switch: bool,
	) -> list[StmtNode]:
		out: list[StmtNode] = []
		for stmt in stmts:
			out.extend(
				self._replace_jump(stmt, ctx, label, inner_labels, in_loop, in_switch)
			)
		return out

	def _replace_jump(
		self,
		stmt: StmtNode,
		ctx: _LoopContext,
		label: str | None,
		inner_labels: set[str],
		in_loop: bool,
		in_switch: bool,
	) -> list[StmtNode]:
		def sub(stmts: list[StmtNode], loop: bool = in_loop, switch: bool = in_switch):
			return self._replace_jumps(stmts, ctx, label, inner_labels, loop, switch)

		if isinstance(stmt, Break):
			if stmt.label is None:
				return [stmt] if in_loop or in_switch else [ctx.exit()]
			if stmt.label == label:
				return [ctx.exit()]
			if stmt.label in inner_labels:
				return [stmt]
			self._outer_context(stmt.label)
			return [Return(Identifier(self.scope.label_id(stmt.label)))]
		if isinstance(stmt, Continue):
			if stmt.label is None:
				return [stmt] if in_loop else ctx.repeat()
			if stmt.label == label:
				return ctx.repeat()
			if stmt.label in inner_labels:
				return [stmt]
			return self._outer_context(stmt.label).repeat()
		if isinstance(stmt, If):
			stmt.then = sub(stmt.then)
			stmt.else_ = sub(stmt.else_)
		elif isinstance(stmt, (While, DoWhile, For, ForIn)):
			stmt.body = sub(stmt.body, loop=True)
		elif isinstance(stmt, Switch):
			for case in stmt.cases:
				case.body = sub(case.body, switch=True)
		elif isinstance(stmt, Try):
			stmt.block = sub(stmt.block)
			if stmt.handler is not None:
				stmt.handler = sub(stmt.handler)
			if stmt.finalizer is not None:
				stmt.finalizer = sub(stmt.finalizer)
		elif isinstance(stmt, Labeled):
			body = sub([stmt.body])
			stmt.body = body[0] if len(body) == 1 else Block(body)
		elif isinstance(stmt, Block):
			stmt.body = sub(stmt.body)
		return [stmt]

	def _outer_context(self, label: str) -> _LoopContext:
		loop = self._labeled_loops.get(label)
		if loop is None:
			raise UnsupportedConstructError(
				f"jump to label '{label}' out of an awaiting loop", self.scope.name
			)
		return _LoopContext(
			self.scope.label_id(label),
			True,
			update=loop.update if isinstance(loop, For) else None,
			retest=loop.cond if isinstance(loop, DoWhile) else None,
		)


def sentinel_call_site(fn_id: str, scope: Scope) -> list[StmtNode]:
	"""Await `fn_id` and return its value unless it is the function itself."""
	call = Await(Call(Identifier(fn_id), []))
	temp = scope.declare("temp")
	return [
		ExprStmt(Assign(Identifier(temp), call)),
		If(
			Binary(Identifier(temp), "!==", Identifier(fn_id)),
			[Return(Identifier(temp))],
		),
	]


def _pop(items: Identifier) -> Call:
	return Call(Member(Identifier(items.name), "pop"), [])


def recursify_loops(body: list[StmtNode], scope: Scope) -> list[StmtNode]:
	return LoopRecursifier(scope).run(body)


