"""Tests for the promise chain builder."""

from thenify import UidRegistry, parse
from thenify.chain import ChainBuilder, Step
from thenify.nodes import emit
from thenify.scope import Scope


def chain(code: str, strict: bool = True, inner: bool = False, promise: str = "Promise") -> str:
	program = parse(code)
	builder = ChainBuilder(Scope(UidRegistry.for_tree(program)), promise)
	return emit(builder.build(program.body, strict, inner).to_expr())


class TestSteps:
	"""Test how statements are split into steps."""

	def test_split_at_await(self):
		assert chain("a();\nawait b();\nc();") == (
			"Promise.resolve().then(function () {\n"
			"  a();\n"
			"  return b();\n"
			"}).then(function () {\n"
			"  c();\n"
			"})"
		)

	def test_value_parameter(self):
		"""Test that an awaited value arrives as _resp."""
		assert chain("x = await b();\nlog(x);") == (
			"Promise.resolve().then(function () {\n"
			"  return b();\n"
			"}).then(function (_resp) {\n"
			"  x = _resp;\n"
			"  log(x);\n"
			"})"
		)

	def test_nested_awaits_innermost_first(self):
		assert chain("f(await g(await h()));") == (
			"Promise.resolve().then(function () {\n"
			"  return h();\n"
			"}).then(function (_resp) {\n"
			"  return g(_resp);\n"
			"}).then(function (_resp) {\n"
			"  f(_resp);\n"
			"})"
		)

	def test_promise_name(self):
		assert chain("await b();", promise="Q").startswith("Q.resolve().then(")


class TestStrictness:
	"""Test trailing steps and collapsing."""

	def test_strict_keeps_empty_tail(self):
		"""Test that a strict chain resolves with undefined, not b()'s value."""
		assert chain("await b();") == (
			"Promise.resolve().then(function () {\n"
			"  return b();\n"
			"}).then(function () {})"
		)

	def test_loose_drops_empty_tail(self):
		assert chain("await b();", strict=False) == (
			"Promise.resolve().then(function () {\n  return b();\n})"
		)

	def test_inner_single_step_collapses(self):
		"""Test that an inner chain of one step is a plain call."""
		assert chain("return x;", inner=True) == "(function () {\n  return x;\n})()"

	def test_empty_step(self):
		assert Step().is_empty()
		assert not Step("catch", dirty=True).is_empty()
		assert not Step(param="_resp").is_empty()


class TestBranches:
	def test_if_that_awaits_becomes_sub_chain(self):
		"""Test that an awaiting branch is returned from the open step."""
		assert chain("if (a) {\n  await b();\n}\nc();") == (
			"Promise.resolve().then(function () {\n"
			"  if (a) {\n"
			"    return (function () {\n"
			"      return b();\n"
			"    })();\n"
			"  }\n"
			"}).then(function () {\n"
			"  c();\n"
			"})"
		)

	def test_try_becomes_catch_step(self):
		"""Test that a try that awaits is a sub-chain with a catch step."""
		code = chain("try {\n  await a();\n} catch (e) {\n  log(e);\n}")
		assert "return Promise.resolve().then(function () {" in code
		assert ".catch(function (e) {" in code
		assert "log(e);" in code

	def test_finally_runs_on_both_paths(self):
		"""Test that a sync finalizer is repeated in both callbacks."""
		code = chain("try {\n  await a();\n} finally {\n  done();\n}")
		assert code.count("done();") == 2
		assert "function (_resp, " not in code
		assert "}, function (_err) {" in code
		assert "throw _err;" in code
		assert "return _resp;" in code
