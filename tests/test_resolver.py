import asyncio
import logging
import unittest

from schema_walker import LoadError, Schema, SchemaRegistry
from schema_walker import resolver
from schema_walker.resolver import join_uri, unescape_token

from tests._util import RecordingLoader


class UriTests(unittest.TestCase):
    def test_join_uri(self):
        base = "http://example.com/a/b.json"
        self.assertEqual(join_uri(base, "#frag"), "http://example.com/a/b.json#frag")
        self.assertEqual(join_uri(base + "#old", "#new"), "http://example.com/a/b.json#new")
        self.assertEqual(join_uri(base, "c.json"), "http://example.com/a/c.json")
        self.assertEqual(join_uri(base, "/root.json"), "http://example.com/root.json")
        self.assertEqual(join_uri(base, "urn:uuid:deadbeef"), "urn:uuid:deadbeef")
        self.assertEqual(join_uri(base, ""), base)

    def test_unescape_token(self):
        self.assertEqual(unescape_token("a~1b"), "a/b")
        self.assertEqual(unescape_token("m~0n"), "m~n")
        self.assertEqual(unescape_token("with%20space"), "with space")
        self.assertEqual(unescape_token("~01"), "~1")


class IndexingTests(unittest.TestCase):
    def setUp(self):
        self.registry = SchemaRegistry(loader=RecordingLoader({}))

    def test_anchors_stop_at_nested_ids(self):
        doc = Schema({
            "$defs": {
                "x": {"$anchor": "here", "type": "string"},
                "nested": {"$id": "nested", "$defs": {"y": {"$anchor": "inner"}}},
            },
        }, registry=self.registry)
        self.assertIn("here", doc.anchors)
        self.assertNotIn("inner", doc.anchors)
        nested = self.registry.get("http://localhost/nested")
        self.assertIsNotNone(nested)
        self.assertIn("inner", nested.anchors)

    def test_first_anchor_wins(self):
        doc = Schema({
            "$defs": {
                "a": {"$anchor": "dup", "const": 1},
                "b": {"$anchor": "dup", "const": 2},
            },
        }, registry=self.registry)
        self.assertEqual(doc.anchors["dup"], {"$anchor": "dup", "const": 1})

    def test_dynamic_anchors_are_indexed(self):
        doc = Schema({"$defs": {"n": {"$dynamicAnchor": "node"}}}, registry=self.registry)
        self.assertEqual(doc.dynamic_anchors, {"node": {"$dynamicAnchor": "node"}})
        self.assertNotIn("node", doc.anchors)

    def test_ids_resolve_against_the_running_base(self):
        doc = Schema({
            "$id": "http://example.com/root/",
            "$defs": {"a": {"$id": "a.json", "$defs": {"b": {"$id": "b.json"}}}},
        }, registry=self.registry)
        self.assertIs(self.registry.get("http://example.com/root/"), doc)
        a = self.registry.get("http://example.com/root/a.json")
        b = self.registry.get("http://example.com/root/b.json")
        self.assertEqual(a.id, "http://example.com/root/a.json")
        self.assertEqual(b.id, "http://example.com/root/b.json")
        self.assertIs(a._tree, doc._tree)
        self.assertIs(b._tree, doc._tree)

    def test_anonymous_root_is_not_registered(self):
        Schema({"type": "string"}, registry=self.registry)
        self.assertEqual(len(self.registry), 0)

    def test_schema_is_never_mutated(self):
        raw = {"$defs": {"a": {"type": "integer"}}, "$ref": "#/$defs/a"}
        before = repr(raw)
        doc = Schema(raw, registry=self.registry)
        resolver.deref(doc)
        doc.validate(1)
        self.assertEqual(repr(raw), before)


class WalkTests(unittest.TestCase):
    def setUp(self):
        self.registry = SchemaRegistry(loader=RecordingLoader({}))
        self.doc = Schema({
            "$defs": {
                "a/b": {"type": "integer"},
                "m~n": {"type": "string"},
                "with space": {"type": "null"},
                "arr": [{"const": 1}, {"const": 2}],
                "named": {"$anchor": "name", "properties": {"p": {"const": "p"}}},
            },
        }, registry=self.registry)

    def node(self, ref):
        found = resolver.walk(self.doc, ref)
        return None if found is None else found[1]

    def test_root(self):
        self.assertIs(self.node("#"), self.doc.schema)
        self.assertIs(self.node(""), self.doc.schema)

    def test_pointer_escapes(self):
        self.assertEqual(self.node("#/$defs/a~1b"), {"type": "integer"})
        self.assertEqual(self.node("#/$defs/m~0n"), {"type": "string"})
        self.assertEqual(self.node("#/$defs/with%20space"), {"type": "null"})

    def test_array_indices(self):
        self.assertEqual(self.node("#/$defs/arr/1"), {"const": 2})
        self.assertIsNone(self.node("#/$defs/arr/5"))
        self.assertIsNone(self.node("#/$defs/arr/x"))

    def test_anchor_then_pointer(self):
        self.assertEqual(self.node("#name"), self.doc.schema["$defs"]["named"])
        self.assertEqual(self.node("#name/properties/p"), {"const": "p"})

    def test_missing_targets(self):
        self.assertIsNone(self.node("#/$defs/missing"))
        self.assertIsNone(self.node("#nowhere"))
        self.assertIsNone(self.node("http://elsewhere.com/schema.json"))

    def test_nested_resource_by_url(self):
        doc = Schema({
            "$defs": {"n": {"$id": "http://example.com/n", "$defs": {"y": {"$anchor": "inner", "const": 3}}}},
        }, registry=self.registry)
        found = resolver.walk(doc, "http://example.com/n#inner")
        self.assertIsNotNone(found)
        self.assertEqual(found[0].id, "http://example.com/n")
        self.assertEqual(found[1], {"$anchor": "inner", "const": 3})


class RegistryTests(unittest.IsolatedAsyncioTestCase):
    async def test_add_keeps_the_first_document(self):
        registry = SchemaRegistry(loader=RecordingLoader({}))
        first, second = object(), object()
        self.assertIs(registry.add("u", first), first)
        self.assertIs(registry.add("u", second), first)
        self.assertIn("u", registry)
        self.assertEqual(list(registry), ["u"])

    async def test_concurrent_fetches_share_one_load(self):
        url = "http://example.com/s.json"
        loader = RecordingLoader({url: {"type": "integer"}}, delay=0.01)
        registry = SchemaRegistry(loader=loader)

        def factory(raw, u):
            return Schema(raw, base_uri=u, registry=registry)

        a, b, c = await asyncio.gather(*(registry.fetch(url, factory) for _ in range(3)))
        self.assertIs(a, b)
        self.assertIs(b, c)
        self.assertEqual(loader.calls, [url])
        self.assertIs(await registry.fetch(url, factory), a)
        self.assertEqual(loader.calls, [url])

    async def test_sync_loaders_are_supported(self):
        registry = SchemaRegistry(loader=lambda url: {"const": url})
        doc = await registry.fetch("http://example.com/x", lambda raw, u: Schema(raw, base_uri=u, registry=registry))
        self.assertEqual(doc.schema, {"const": "http://example.com/x"})

    async def test_failures_are_not_cached(self):
        url = "http://example.com/late.json"
        loader = RecordingLoader({})
        registry = SchemaRegistry(loader=loader)

        def factory(raw, u):
            return Schema(raw, base_uri=u, registry=registry)

        with self.assertRaises(LoadError):
            await registry.fetch(url, factory)
        self.assertNotIn(url, registry)

        loader.documents[url] = {"type": "string"}
        doc = await registry.fetch(url, factory)
        self.assertEqual(doc["type"], "string")
        self.assertEqual(loader.calls, [url, url])

    async def test_non_schema_documents_are_rejected(self):
        registry = SchemaRegistry(loader=lambda url: [1, 2, 3])
        with self.assertRaises(LoadError):
            await registry.fetch("http://example.com/list", lambda raw, u: raw)

    async def test_abandoned_failed_load_is_consumed(self):
        url = "http://example.com/gone.json"
        registry = SchemaRegistry(loader=RecordingLoader({}, delay=0.01))
        waiter = asyncio.ensure_future(registry.fetch(url, lambda raw, u: raw))
        await asyncio.sleep(0)
        pending = registry._pending[url]

        with self.assertLogs("schema_walker.resolver", level=logging.DEBUG) as logs:
            waiter.cancel()
            with self.assertRaises(asyncio.CancelledError):
                await waiter
            while not pending.done():
                await asyncio.sleep(0.005)
            await asyncio.sleep(0)
        self.assertTrue(any("abandoned load failed" in line for line in logs.output))
        self.assertNotIn(url, registry._pending)
        self.assertNotIn(url, registry)


class LoadRefsTests(unittest.IsolatedAsyncioTestCase):
    async def test_transitive_closure(self):
        loader = RecordingLoader({
            "http://example.com/a.json": {"$ref": "b.json"},
            "http://example.com/b.json": {"$ref": "a.json", "type": "integer"},
        })
        registry = SchemaRegistry(loader=loader)
        root = Schema({"$ref": "http://example.com/a.json"}, registry=registry)
        roots = await resolver.load_refs(root)
        self.assertIs(roots[0], root)
        self.assertEqual(len(roots), 3)
        self.assertEqual(sorted(loader.calls), ["http://example.com/a.json", "http://example.com/b.json"])

    async def test_local_and_embedded_refs_need_no_fetch(self):
        loader = RecordingLoader({})
        root = Schema({
            "$id": "http://example.com/root.json",
            "$defs": {"item": {"$id": "item.json", "type": "integer"}},
            "properties": {"x": {"$ref": "item.json"}, "y": {"$ref": "#/$defs/item"}},
        }, registry=SchemaRegistry(loader=loader))
        roots = await resolver.load_refs(root)
        self.assertEqual(roots, [root])
        self.assertEqual(loader.calls, [])

    async def test_deref_reports_missing_targets(self):
        root = Schema({"$ref": "#/$defs/missing"}, registry=SchemaRegistry(loader=RecordingLoader({})))
        with self.assertLogs("schema_walker.resolver", level="ERROR"):
            missing = resolver.deref(root)
        self.assertEqual(missing, ["#/$defs/missing"])


if __name__ == "__main__":
    unittest.main()
