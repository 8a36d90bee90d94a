"""
resolver.py - make every ``$ref`` / ``$dynamicRef`` resolvable before validation
===============================================================================

Public API
----------
SchemaRegistry
    URL -> document cache with at-most-one fetch per URL.  Concurrent
    requests for the same URL share one in-flight future.  Append-only.

default_registry
    Module-level :class:`SchemaRegistry` used when a document is built
    without an explicit one.  Pass your own registry for isolation.

find_anchors(doc, node) / find_ids(doc, node)
    Construction-time indexing of ``$anchor`` / ``$dynamicAnchor`` (one
    ``$id`` scope) and of nested ``$id`` resources (whole tree).

load_refs(doc)           (async)
    Fetch every foreign document reachable from *doc*, transitively.

deref(doc)
    Resolve every reference of a document tree into its side table.

walk(doc, ref)
    Resolve one reference string to ``(document, node)`` or ``None``.

The schema itself is never mutated: resolved targets live in a side table
keyed by ``(id(node), keyword)`` and shared by all resources of one tree.
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import re
from collections.abc import Mapping
from typing import Any, Callable, Dict, Iterator, List, Optional, Set, Tuple
from urllib.parse import unquote, urldefrag, urljoin

from .loader import LoadError, load_document

__all__ = [
    "DEFAULT_BASE_URI",
    "SchemaRegistry",
    "SchemaStructureError",
    "default_registry",
    "deref",
    "find_anchors",
    "find_ids",
    "iter_subschemas",
    "join_uri",
    "load_refs",
    "unescape_token",
    "walk",
]

log = logging.getLogger("schema_walker.resolver")

DEFAULT_BASE_URI = "http://localhost/"

REF_KEYWORDS = ("$ref", "$dynamicRef")


class SchemaStructureError(ValueError):
    """Raised for a malformed schema node or an unresolvable reference."""


# --------------------------------------------------------------------------- #
# Schema shape                                                                #
# --------------------------------------------------------------------------- #

# keyword -> where its subschemas live
SUBSCHEMA_KEYWORDS: Dict[str, str] = {
    "$defs": "map",
    "definitions": "map",
    "properties": "map",
    "patternProperties": "map",
    "dependentSchemas": "map",
    "allOf": "list",
    "anyOf": "list",
    "oneOf": "list",
    "prefixItems": "list",
    "not": "single",
    "if": "single",
    "then": "single",
    "else": "single",
    "items": "single",
    "contains": "single",
    "additionalProperties": "single",
    "propertyNames": "single",
    "unevaluatedProperties": "single",
    "unevaluatedItems": "single",
    "contentSchema": "single",
}


def iter_subschemas(node: Any) -> Iterator[Any]:
    """Yield the direct subschemas of *node* (mappings and booleans only)."""
    if not isinstance(node, Mapping):
        return
    for keyword, value in node.items():
        shape = SUBSCHEMA_KEYWORDS.get(keyword)
        if shape == "map" and isinstance(value, Mapping):
            subs = value.values()
        elif shape == "list" and isinstance(value, list):
            subs = value
        elif shape == "single":
            subs = (value,)
        else:
            continue
        for sub in subs:
            if isinstance(sub, (Mapping, bool)):
                yield sub


# --------------------------------------------------------------------------- #
# URIs & pointers                                                             #
# --------------------------------------------------------------------------- #

_SCHEME_RE = re.compile(r"[A-Za-z][A-Za-z0-9+.-]*:")


def join_uri(base: str, ref: str) -> str:
    """Resolve *ref* against *base* (fragment-only refs keep the base URL)."""
    if not ref:
        return base
    if ref.startswith("#"):
        return urldefrag(base)[0] + ref
    if _SCHEME_RE.match(ref):
        return ref
    return urljoin(base, ref)


def _document_url(uri: str) -> str:
    return urldefrag(uri)[0]


def unescape_token(token: str) -> str:
    """Decode one JSON-pointer segment taken from a URI fragment."""
    return unquote(token).replace("~1", "/").replace("~0", "~")


# --------------------------------------------------------------------------- #
# Registry                                                                    #
# --------------------------------------------------------------------------- #

class ResourceTree:
    """Side tables shared by a root document and its nested ``$id`` resources."""

    __slots__ = ("root", "refs", "by_node", "by_url")

    def __init__(self, root: Any):
        self.root = root
        self.refs: Dict[Tuple[int, str], Tuple[Any, Any]] = {}
        self.by_node: Dict[int, Any] = {}
        self.by_url: Dict[str, Any] = {root.id: root}


def _retrieve(future: "asyncio.Future") -> None:
    # a load whose every awaiter was cancelled still has its failure consumed
    if not future.cancelled() and future.exception() is not None:
        log.debug("abandoned load failed: %s", future.exception())


class SchemaRegistry:
    """Cache of schema documents by absolute URL.

    *loader* is any callable ``url -> document`` (plain or ``async``); the
    default fetches with :func:`schema_walker.loader.load_document`.
    """

    def __init__(self, loader: Callable[[str], Any] = load_document):
        self.loader = loader
        self._documents: Dict[str, Any] = {}
        self._pending: Dict[str, asyncio.Future] = {}

    def __contains__(self, url: str) -> bool:
        return url in self._documents

    def __len__(self) -> int:
        return len(self._documents)

    def __iter__(self) -> Iterator[str]:
        return iter(list(self._documents))

    def get(self, url: str) -> Optional[Any]:
        return self._documents.get(url)

    def add(self, url: str, document: Any) -> Any:
        """Register *document* under *url*; the first registration wins."""
        current = self._documents.setdefault(url, document)
        if current is not document:
            log.debug("%s already registered, keeping the first document", url)
        return current

    async def fetch(self, url: str, factory: Callable[[Any, str], Any]) -> Any:
        """Return the document for *url*, loading it at most once."""
        document = self._documents.get(url)
        if document is not None:
            log.debug("cache hit for %s", url)
            return document
        future = self._pending.get(url)
        if future is None:
            future = asyncio.ensure_future(self._load(url, factory))
            future.add_done_callback(_retrieve)
            self._pending[url] = future
        return await asyncio.shield(future)

    async def _load(self, url: str, factory: Callable[[Any, str], Any]) -> Any:
        try:
            raw = self.loader(url)
            if inspect.isawaitable(raw):
                raw = await raw
            if not isinstance(raw, (Mapping, bool)):
                raise LoadError(f"{url} did not contain a schema (got {type(raw).__name__})")
            return self.add(url, factory(raw, url))
        except LoadError:
            raise
        except Exception as exc:
            raise LoadError(f"Could not load schema document {url}: {exc}") from exc
        finally:
            self._pending.pop(url, None)


default_registry = SchemaRegistry()


# --------------------------------------------------------------------------- #
# Construction-time indexing                                                  #
# --------------------------------------------------------------------------- #

def find_anchors(doc: Any, node: Any, *, _top: bool = True) -> None:
    """Register first-seen anchors of *doc*'s ``$id`` scope."""
    if not isinstance(node, Mapping):
        return
    if not _top and "$id" in node:
        return  # a nested resource indexes its own anchors

    anchor = node.get("$anchor")
    if isinstance(anchor, str) and anchor not in doc.anchors:
        doc.anchors[anchor] = node
    anchor = node.get("$dynamicAnchor")
    if isinstance(anchor, str) and anchor not in doc.dynamic_anchors:
        doc.dynamic_anchors[anchor] = node

    for sub in iter_subschemas(node):
        find_anchors(doc, sub, _top=False)


def find_ids(doc: Any, node: Any, base: Optional[str] = None) -> None:
    """Turn every nested ``$id`` under *node* into a registered resource.

    The resource shares *doc*'s side tables.  Its reference resolution is not
    run here: it is deferred to the enclosing :func:`deref` pass.
    """
    if not isinstance(node, Mapping):
        return
    base = doc.id if base is None else base
    ident = node.get("$id")
    if isinstance(ident, str) and node is not doc.schema:
        base = _document_url(join_uri(base, ident))
        tree = doc._tree
        resource = tree.by_node.get(id(node))
        if resource is None:
            resource = doc.nested(node, base)
            tree.by_node[id(node)] = resource
            tree.by_url.setdefault(base, resource)
            doc.registry.add(base, resource)
            log.debug("registered nested resource %s, deref deferred", base)

    for sub in iter_subschemas(node):
        find_ids(doc, sub, base)


# --------------------------------------------------------------------------- #
# Walking                                                                     #
# --------------------------------------------------------------------------- #

def _lookup(doc: Any, url: str) -> Optional[Any]:
    target = doc._tree.by_url.get(url)
    return target if target is not None else doc.registry.get(url)


def walk(doc: Any, ref: str, *, dynamic: bool = False) -> Optional[Tuple[Any, Any]]:
    """Resolve *ref* relative to *doc*.

    The fragment is ``#anchorOrEmpty/segment/segment...``: the first segment
    names an anchor (empty means the resource root), the rest are JSON-pointer
    tokens.  Non-local refs are delegated to the foreign document.
    """
    url, fragment = urldefrag(join_uri(doc.id, ref))
    if url != doc.id:
        foreign = _lookup(doc, url)
        if foreign is None:
            log.debug("no document registered for %s", url)
            return None
        if foreign is not doc:
            return walk(foreign, "#" + fragment, dynamic=dynamic)

    anchor, *path = fragment.split("/")
    anchor = unquote(anchor)
    if dynamic:
        node = doc.dynamic_anchors.get(anchor)
    else:
        node = doc.anchors.get(anchor)
        if node is None:
            node = doc.dynamic_anchors.get(anchor)
    if node is None:
        return None

    for token in path:
        token = unescape_token(token)
        if isinstance(node, Mapping):
            if token not in node:
                return None
            node = node[token]
        elif isinstance(node, list) and token.isdigit() and int(token) < len(node):
            node = node[int(token)]
        else:
            return None
    return doc, node


# --------------------------------------------------------------------------- #
# Loading & dereferencing                                                     #
# --------------------------------------------------------------------------- #

def _foreign_urls(doc: Any, node: Any, found: Set[str]) -> None:
    if not isinstance(node, Mapping):
        return
    tree = doc._tree
    doc = tree.by_node.get(id(node), doc)
    for keyword in REF_KEYWORDS:
        ref = node.get(keyword)
        if not isinstance(ref, str) or ref.startswith("#"):
            continue
        if (id(node), keyword) in tree.refs:
            continue  # already dereferenced
        url = _document_url(join_uri(doc.id, ref))
        if url not in tree.by_url:
            found.add(url)
    for sub in iter_subschemas(node):
        _foreign_urls(doc, sub, found)


async def load_refs(doc: Any) -> List[Any]:
    """Fetch every foreign document reachable from *doc*.

    Works breadth-first: each round fetches all distinct URLs of the newest
    documents concurrently, then looks at what those documents reference.
    Returns the root documents of every tree involved, *doc*'s first.
    """
    seen: Dict[int, Any] = {id(doc._tree): doc._tree.root}
    batch = [doc._tree.root]
    while batch:
        urls: Set[str] = set()
        for root in batch:
            _foreign_urls(root, root.schema, urls)
        loaded = await asyncio.gather(
            *(doc.registry.fetch(url, doc.foreign) for url in sorted(urls))
        )
        batch = []
        for found in loaded:
            tree = found._tree
            if id(tree) not in seen:
                seen[id(tree)] = tree.root
                batch.append(tree.root)
    return list(seen.values())


def deref(doc: Any, node: Any = None) -> List[str]:
    """Resolve every not-yet-resolved reference under *node* (default: root).

    A missing target is logged and skipped; the returned list names every
    reference that could not be resolved.
    """
    missing: List[str] = []
    _deref(doc, doc.schema if node is None else node, missing)
    return missing


def _deref(doc: Any, node: Any, missing: List[str]) -> None:
    if not isinstance(node, Mapping):
        return
    tree = doc._tree
    doc = tree.by_node.get(id(node), doc)
    for keyword in REF_KEYWORDS:
        ref = node.get(keyword)
        if not isinstance(ref, str) or (id(node), keyword) in tree.refs:
            continue
        target = walk(doc, ref)
        if target is None:
            log.error("%s %r not found (base %s)", keyword, ref, doc.id)
            missing.append(ref)
        else:
            tree.refs[(id(node), keyword)] = target
    for sub in iter_subschemas(node):
        _deref(doc, sub, missing)
