"""
Rewrites async functions into promise-returning ones.

Each async function goes through these passes, outermost function first:

1. hoisting: declarations become assignments to one `var` list
2. normalization: block bodies, captured `this`/`arguments`, refusals
3. loops that await, or return from a function that awaits, become
   recursive functions
4. switches that do the same become guarded ifs
5. trys that return before later steps move into generated functions
6. ifs are flattened and every list gets a single exit
7. operands are hoisted so evaluation order survives the split
8. the body becomes `return Promise.resolve().then(...)...;`

The walk then continues into the rewritten body, which also reaches the
async functions the passes generated. Finally, the inliner removes the
wrappers that turned out to be trivial.
"""

from __future__ import annotations

import logging

from thenify.chain import ChainBuilder
from thenify.config import TransformOptions
from thenify.expressions import hoist_expressions
from thenify.hoisting import hoist_function
from thenify.ifs import normalize_exits
from thenify.inline import inline_program
from thenify.loops import recursify_loops
from thenify.nodes import (
	Arrow,
	Declarator,
	Function,
	Program,
	Return,
	StmtNode,
	VarDecl,
	emit,
)
from thenify.normalize import ensure_block, normalize_function
from thenify.parser import parse
from thenify.scope import UidRegistry
from thenify.switch import desugar_switches
from thenify.tries import wrap_returning_trys
from thenify.visitor import Transformer

logger = logging.getLogger(__name__)


class _AsyncRewriter(Transformer):
	registry: UidRegistry
	options: TransformOptions
	rewritten: int

	def __init__(self, registry: UidRegistry, options: TransformOptions) -> None:
		self.registry = registry
		self.options = options
		self.rewritten = 0

	def visit_Function(self, node: Function) -> Function:
		if node.is_async:
			self.rewrite(node)
		return self.generic_visit(node)  # pyright: ignore[reportReturnType]

	def visit_Arrow(self, node: Arrow) -> Arrow:
		if node.is_async:
			self.rewrite(node)
		return self.generic_visit(node)  # pyright: ignore[reportReturnType]

	def rewrite(self, fn: Function | Arrow) -> None:
		name = fn.name if isinstance(fn, Function) else None
		generated = isinstance(fn, Function) and fn.generated
		logger.debug("Rewriting async function %s", name or "<anonymous>")

		ensure_block(fn)
		scope = hoist_function(fn, self.registry)
		normalize_function(fn, scope)
		assert isinstance(fn.body, list)
		body = recursify_loops(fn.body, scope)
		body = desugar_switches(body, scope)
		body = wrap_returning_trys(body, scope)
		body = normalize_exits(body, scope)
		body = hoist_expressions(body, scope)

		if generated:
			assert isinstance(fn, Function)
			strict, inner = not fn.loose, True
		else:
			strict, inner = self.options.strict_top_level, False
		builder = ChainBuilder(scope, self.options.promise_name)
		chain = builder.build(body, strict, inner).to_expr()

		new_body: list[StmtNode] = [*scope.hoisted_functions]
		if scope.hoisted_vars:
			declarators = [Declarator(n) for n in scope.hoisted_vars]
			new_body.append(VarDecl("var", declarators))
		new_body.extend(scope.prelude)
		new_body.append(Return(chain))
		fn.body = new_body
		fn.is_async = False
		self.rewritten += 1


def transform_program(
	program: Program, options: TransformOptions | None = None
) -> Program:
	"""Rewrite every async function in `program`, in place, and return it."""
	options = options or TransformOptions()
	registry = UidRegistry.for_tree(program)
	rewriter = _AsyncRewriter(registry, options)
	rewriter.visit(program)
	if options.inline and rewriter.rewritten:
		inline_program(program)
	logger.debug("Rewrote %d async functions", rewriter.rewritten)
	return program


def transform_source(code: str, options: TransformOptions | None = None) -> str:
	"""Parse JavaScript source, rewrite its async functions and print it back."""
	return emit(transform_program(parse(code), options))
