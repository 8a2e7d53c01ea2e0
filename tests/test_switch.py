"""Tests for the switch desugarer."""

import pytest
from thenify import UidRegistry, UnsupportedConstructError, hoist_function, parse
from thenify.nodes import FunctionDecl, Program, StmtNode, Switch, emit
from thenify.scope import Scope
from thenify.switch import desugar_switches


def desugared(code: str) -> tuple[list[StmtNode], Scope]:
	program = parse(code)
	decl = program.body[0]
	assert isinstance(decl, FunctionDecl)
	scope = hoist_function(decl.fn, UidRegistry.for_tree(program))
	assert isinstance(decl.fn.body, list)
	return desugar_switches(decl.fn.body, scope), scope


class TestDesugar:
	def test_sync_switch_is_kept(self):
		body, scope = desugared(
			"async function f(x) {\n  switch (x) {\n    case 1:\n      a();\n  }\n  await b();\n}"
		)
		assert isinstance(body[0], Switch)
		assert scope.hoisted_vars == []

	def test_sync_switch_with_return(self):
		"""Test that a returning switch is desugared when the function awaits after it."""
		body, _ = desugared(
			"async function f(x) {\n"
			"  switch (x) {\n"
			"    case 1:\n"
			"      return 1;\n"
			"  }\n"
			"  await b();\n"
			"}"
		)
		assert not any(isinstance(stmt, Switch) for stmt in body)
		assert "return 1;" in emit(Program(body))

	def test_cases_become_guarded_ifs(self):
		body, scope = desugared(
			"async function f(x) {\n"
			"  switch (x) {\n"
			"    case 1:\n"
			"      await a();\n"
			"      break;\n"
			"    case 2:\n"
			"      b();\n"
			"  }\n"
			"}"
		)
		assert emit(Program(body)) == (
			"_discriminant = x;\n"
			"_match = false;\n"
			"_brokenOut = false;\n"
			"if (!_brokenOut && (_match || 1 === _discriminant)) {\n"
			"  await a();\n"
			"  _brokenOut = true;\n"
			"  _match = true;\n"
			"}\n"
			"if (!_brokenOut && (_match || 2 === _discriminant)) {\n"
			"  b();\n"
			"  _match = true;\n"
			"}"
		)
		assert scope.hoisted_vars == ["_discriminant", "_match", "_brokenOut"]

	def test_conditional_break_guards_the_rest(self):
		"""Test that statements after a break inside an if only run when it did not."""
		body, _ = desugared(
			"async function f(x) {\n"
			"  switch (x) {\n"
			"    case 1:\n"
			"      if (y) {\n"
			"        break;\n"
			"      }\n"
			"      await z();\n"
			"  }\n"
			"}"
		)
		code = emit(Program(body))
		assert "if (y) {\n    _brokenOut = true;\n  }\n  if (!_brokenOut) {\n    await z();\n  }" in code

	def test_break_of_nested_loop_is_untouched(self):
		body, _ = desugared(
			"async function f(x) {\n"
			"  switch (x) {\n"
			"    case 1:\n"
			"      while (y) {\n"
			"        break;\n"
			"      }\n"
			"      await z();\n"
			"  }\n"
			"}"
		)
		assert "while (y) {\n    break;\n  }" in emit(Program(body))

	def test_default_in_the_middle(self):
		"""Test that the default branch is tested after every case."""
		body, _ = desugared(
			"async function f(x) {\n"
			"  switch (x) {\n"
			"    case 1:\n"
			"      await a();\n"
			"    default:\n"
			"      d();\n"
			"    case 2:\n"
			"      b();\n"
			"  }\n"
			"}"
		)
		code = emit(Program(body))
		assert "} else {" in code
		assert "if (!_brokenOut && !_match) {" in code

	def test_labeled_break_from_nested_loop_is_refused(self):
		with pytest.raises(UnsupportedConstructError):
			desugared(
				"async function f(x) {\n"
				"  s: switch (x) {\n"
				"    case 1:\n"
				"      while (y) {\n"
				"        break s;\n"
				"      }\n"
				"      await z();\n"
				"  }\n"
				"}"
			)
