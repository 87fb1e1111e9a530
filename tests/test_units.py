"""Unit tests for composing stages into units."""

import asyncio
import unittest
from types import SimpleNamespace
from unittest.mock import MagicMock

from contextualize.engine.core import create
from contextualize.engine.units import Unit, invoke, parallel, serial


def run(request, *stages):
    """Run stages in order against ``request`` the way a host pipeline would."""
    asyncio.run(serial(*stages)(request, None))


class TestCombinators(unittest.TestCase):
    """serial() and parallel() on plain stages."""

    def test_invoke_sync_and_async(self):
        """Test plain and coroutine stages are both run."""
        calls = []

        async def later(request, response):
            calls.append("async")

        asyncio.run(invoke(lambda request, response: calls.append("sync"), None, None))
        asyncio.run(invoke(later, None, None))
        
        self.assertEqual(calls, ["sync", "async"])

    def test_serial_order(self):
        """Test serial stages run in declaration order."""
        calls = []
        stage = serial(
            lambda request, response: calls.append(1),
            lambda request, response: calls.append(2),
        )
        
        asyncio.run(stage(None, None))
        self.assertEqual(calls, [1, 2])

    def test_serial_stops_at_error(self):
        """Test a failing stage stops the rest."""
        calls = []

        def failing(request, response):
            raise RuntimeError("stop")

        stage = serial(failing, lambda request, response: calls.append("after"))
        
        with self.assertRaises(RuntimeError):
            asyncio.run(stage(None, None))
        self.assertEqual(calls, [])

    def test_serial_rejects_non_callables(self):
        """Test serial composition requires callables."""
        with self.assertRaises(TypeError):
            serial(lambda request: None, 5)

    def test_parallel_waits_for_all_members(self):
        """Test a parallel group finishes only after every member."""
        finished = []

        async def slow(request, response):
            await asyncio.sleep(0.02)
            finished.append("slow")

        async def failing(request, response):
            raise RuntimeError("fast failure")

        with self.assertRaises(RuntimeError):
            asyncio.run(parallel(failing, slow)(None, None))
        self.assertEqual(finished, ["slow"])


class TestChain(unittest.TestCase):
    """unit.chain() keeps sequence and accessor surface."""

    def setUp(self):
        self.context = create("foo")
        self.calls = []

        def A(request, response):
            self.calls.append("A")
            self.context.view(request).foo = "a"

        def B(request, response):
            self.calls.append("B")
            self.context.view(request).foo = "b"

        self.A, self.B = A, B

    def test_chain_equals_separate_installation(self):
        """Test chaining matches installing the stages one by one."""
        separate = SimpleNamespace()
        run(separate, self.context, self.context.wrap(self.A), self.context.wrap(self.B))
        separate_calls = list(self.calls)
        self.calls.clear()
        
        chained = SimpleNamespace()
        unit = self.context.chain(self.context.wrap(self.A), self.context.wrap(self.B))
        run(chained, unit)
        
        self.assertEqual(self.calls, separate_calls)
        self.assertEqual(self.context.resolve(chained), self.context.resolve(separate))

    def test_chain_returns_unit_with_surface(self):
        """Test a chain keeps the accessor surface."""
        unit = self.context.mixin(context="A").chain(self.context.wrap(self.A))
        
        self.assertIsInstance(unit, Unit)
        self.assertEqual(unit.context, "A")
        self.assertEqual(unit.properties, ("foo",))

    def test_chain_rejects_non_callable(self):
        """Test chains require callables."""
        with self.assertRaises(TypeError):
            self.context.chain("nope")

    def test_second_waits_for_first(self):
        """Test the second stage starts after the first completes."""
        context = self.context

        async def first(request, response):
            await asyncio.sleep(0.01)
            self.calls.append("first")

        def second(request, response):
            self.calls.append("second")

        run(SimpleNamespace(), context.chain(context.wrap(first), context.wrap(second)))
        self.assertEqual(self.calls, ["first", "second"])


class TestMixin(unittest.TestCase):
    """unit.mixin() adds attributes without touching the original."""

    def setUp(self):
        self.context = create("foo")

    def test_adds_properties(self):
        """Test extra properties are exposed."""
        unit = self.context.mixin(bar=5)
        
        self.assertEqual(unit.bar, 5)
        self.assertFalse(hasattr(self.context, "bar"))

    def test_invokes_original(self):
        """Test the mixed-in unit still runs the original."""
        stub = MagicMock(return_value=None)
        request = SimpleNamespace(id=1)
        unit = Unit(self.context, stub).mixin(bar=5)
        
        asyncio.run(unit(request))
        stub.assert_called_once_with(request)

    def test_reserved_names(self):
        """Test reserved names cannot be mixed in."""
        with self.assertRaises(TypeError):
            self.context.mixin(resolve=5)
        with self.assertRaises(TypeError):
            self.context.mixin(_engine=None)

    def test_keeps_existing_surface(self):
        """Test existing surface survives a mixin."""
        unit = self.context.mixin(context="a").mixin(bar=5)
        self.assertEqual((unit.context, unit.bar), ("a", 5))


class TestIsolate(unittest.TestCase):
    """unit.isolate() builds self-installing queryable units."""

    def setUp(self):
        self.context = create("foo")

    def test_single_handler_sets_up_context(self):
        """Test isolating a handler also installs the namespace."""
        def x(request, response):
            self.context.view(request).foo = "lol"

        request = SimpleNamespace()
        unit = self.context.isolate(x)
        run(request, unit)
        
        self.assertEqual(unit.context, "x")
        self.assertEqual(self.context.resolve(request), {"x": {"foo": "lol"}})
        self.assertEqual(unit.resolve(request), {"foo": "lol"})
        self.assertEqual(unit.resolve(request, as_mapping=True), {"x": {"foo": "lol"}})

    def test_reisolating_keeps_identity(self):
        """Test isolating twice keeps the identifier."""
        def x(request, response):
            pass

        self.assertEqual(self.context.isolate(x).context, self.context.isolate(x).context)

    def test_group_of_handlers(self):
        """Test a group resolves across all its members."""
        def a(request, response):
            self.context.view(request).foo = "bar"

        def b(request, response):
            self.context.view(request).foo = "baz"

        request = SimpleNamespace()
        ab = self.context.isolate([a, b])
        run(request, ab)
        
        self.assertEqual(ab.context, ["a", "b"])
        self.assertEqual(ab.resolve(request), {"a": {"foo": "bar"}, "b": {"foo": "baz"}})

    def test_group_members_keep_their_own_values(self):
        """Test group members keep separate bags."""
        context = self.context
        seen = {}

        async def a(request, response):
            context.view(request).foo = "a"
            await asyncio.sleep(0.01)
            seen["a"] = context.view(request).foo

        async def b(request, response):
            context.view(request).foo = "b"
            seen["b"] = context.view(request).foo

        run(SimpleNamespace(), context.isolate([a, b]))
        self.assertEqual(seen, {"a": "a", "b": "b"})

    def test_group_excludes_other_identifiers(self):
        """Test a group excludes identifiers outside it."""
        def a(request, response):
            self.context.view(request).foo = 1

        def c(request, response):
            self.context.view(request).foo = 3

        request = SimpleNamespace()
        group = self.context.isolate([a])
        run(request, self.context.isolate(c), group)
        
        self.assertEqual(group.resolve(request), {"a": {"foo": 1}})

    def test_recursive_composition(self):
        """Test composed units compose further."""
        calls = []

        def a(request, response):
            calls.append("a")
            self.context.view(request).foo = 1

        def b(request, response):
            calls.append("b")
            self.context.view(request).foo = 2

        request = SimpleNamespace()
        unit = self.context.isolate(a).isolate(b)
        run(request, unit)
        
        self.assertEqual(calls, ["a", "b"])
        self.assertEqual(unit.resolve(request), {"foo": 2})
        self.assertEqual(self.context.resolve(request), {"a": {"foo": 1}, "b": {"foo": 2}})


if __name__ == "__main__":
    unittest.main()
