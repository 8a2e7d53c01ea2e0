"""Tests for the inliner of generated functions."""

from thenify import inline_program, parse
from thenify.inline import always_exits
from thenify.nodes import (
	Assign,
	Call,
	Declarator,
	ExprStmt,
	Function,
	FunctionDecl,
	Identifier,
	If,
	Literal,
	Program,
	Return,
	StmtNode,
	This,
	Throw,
	VarDecl,
	emit,
)


def iife(body: list[StmtNode]) -> Call:
	return Call(Function([], body, generated=True), [])


def call(name: str) -> ExprStmt:
	return ExprStmt(Call(Identifier(name), []))


def inlined(program: Program) -> str:
	inline_program(program)
	return emit(program)


class TestInlineCall:
	def test_single_return(self):
		"""Test that a wrapper returning one value is replaced by it."""
		program = Program([ExprStmt(Assign(Identifier("x"), iife([Return(Literal(1))])))])
		assert inlined(program) == "x = 1;"

	def test_user_functions_are_left_alone(self):
		code = "x = (function () {\n  return 1;\n})();"
		assert inlined(parse(code)) == code

	def test_context_blocks_inlining(self):
		"""Test that a wrapper reading `this` keeps its own binding."""
		program = Program([ExprStmt(Assign(Identifier("x"), iife([Return(This())])))])
		assert "function ()" in inlined(program)

	def test_declarations_block_inlining(self):
		program = Program(
			[
				ExprStmt(
					iife([VarDecl("var", [Declarator("y", Literal(1))]), Return(Identifier("y"))])
				)
			]
		)
		assert "var y = 1;" in inlined(program)


class TestInlineReturn:
	"""Test splicing `return (function () {...})()` into the enclosing body."""

	def test_tail_position(self):
		fn = Function(
			[],
			[call("a"), Return(iife([call("b"), Return(Identifier("c"))]))],
			name="f",
		)
		assert inlined(Program([FunctionDecl(fn)])) == (
			"function f() {\n  a();\n  b();\n  return c;\n}"
		)

	def test_body_that_always_exits(self):
		"""Test that a non-tail return is spliced when the body cannot fall through."""
		fn = Function(
			[],
			[
				If(Identifier("a"), [Return(iife([call("b"), Throw(Identifier("e"))]))]),
				call("c"),
			],
			name="f",
		)
		assert inlined(Program([FunctionDecl(fn)])) == (
			"function f() {\n  if (a) {\n    b();\n    throw e;\n  }\n  c();\n}"
		)

	def test_body_that_falls_through_is_kept(self):
		fn = Function(
			[],
			[If(Identifier("a"), [Return(iife([call("b")]))]), call("c")],
			name="f",
		)
		assert "return (function () {" in inlined(Program([FunctionDecl(fn)]))


class TestAlwaysExits:
	def test_cases(self):
		assert always_exits([Return()])
		assert always_exits([call("a"), Throw(Identifier("e"))])
		assert always_exits([If(Identifier("a"), [Return()], [Return()])])
		assert not always_exits([If(Identifier("a"), [Return()])])
		assert not always_exits([])
