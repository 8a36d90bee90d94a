"""
document.py - the public wrapper around one JSON Schema document.
"""
from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Iterator, List, Optional, Tuple

from . import resolver, utils, validator
from .loader import load_schema

__all__ = ["Schema"]

log = logging.getLogger("schema_walker.document")


class Schema:
    """A schema document: root node, absolute ``$id`` and anchor indexes.

    Construction is synchronous and indexes ``$anchor`` / ``$dynamicAnchor``
    and nested ``$id`` resources.  Call :meth:`deref` once before validating
    a schema that references other documents; the instance can then validate
    any number of values.
    """

    def __init__(
        self,
        schema: Any,
        *,
        base_uri: str = resolver.DEFAULT_BASE_URI,
        registry: Optional[resolver.SchemaRegistry] = None,
        format_assertion: bool = True,
        strict_refs: bool = False,
        _tree: Optional[resolver.ResourceTree] = None,
    ):
        if not isinstance(schema, (Mapping, bool)):
            raise resolver.SchemaStructureError(
                f"a schema must be an object or a boolean, got {type(schema).__name__}"
            )
        self.schema = schema
        self.registry = resolver.default_registry if registry is None else registry
        self.format_assertion = format_assertion
        self.strict_refs = strict_refs

        ident = schema.get("$id") if isinstance(schema, Mapping) else None
        if isinstance(ident, str) and _tree is None:
            self.id = resolver._document_url(resolver.join_uri(base_uri, ident))
        else:
            self.id = resolver._document_url(base_uri)

        self.anchors: dict = {"": schema}
        self.dynamic_anchors: dict = {}
        resolver.find_anchors(self, schema)

        if _tree is None:
            self._tree = resolver.ResourceTree(self)
            if isinstance(ident, str):
                self.registry.add(self.id, self)
            resolver.find_ids(self, schema)
        else:
            self._tree = _tree

    def __repr__(self) -> str:
        return f"<Schema {self.id}>"

    # ------------------------------------------------------------------ #
    # Construction helpers                                               #
    # ------------------------------------------------------------------ #
    @classmethod
    def load(cls, path: str | Path, **options: Any) -> "Schema":
        """Read a schema from disk or the bundled package data and wrap it."""
        return cls(load_schema(path), **options)

    def _options(self) -> dict:
        return {
            "registry": self.registry,
            "format_assertion": self.format_assertion,
            "strict_refs": self.strict_refs,
        }

    def nested(self, node: Any, url: str) -> "Schema":
        """Wrap an embedded ``$id`` resource; it shares this tree's side tables."""
        return type(self)(node, base_uri=url, _tree=self._tree, **self._options())

    def foreign(self, raw: Any, url: str) -> "Schema":
        """Wrap a document fetched from *url*; it starts a tree of its own."""
        return type(self)(raw, base_uri=url, **self._options())

    # ------------------------------------------------------------------ #
    # Reference resolution                                               #
    # ------------------------------------------------------------------ #
    async def deref(self, timeout: Optional[float] = None) -> "Schema":
        """Load every referenced document and resolve every reference.

        Safe to call more than once; already resolved references are kept.
        Raises :class:`~schema_walker.loader.LoadError` when a document cannot
        be fetched and ``asyncio.TimeoutError`` when *timeout* expires.
        """
        roots = await asyncio.wait_for(resolver.load_refs(self), timeout)
        log.debug("deref of %s spans %d document tree(s)", self.id, len(roots))
        missing: List[str] = []
        for root in roots:
            missing.extend(resolver.deref(root))
        if missing and self.strict_refs:
            raise resolver.SchemaStructureError(f"unresolved references: {sorted(set(missing))}")
        return self

    def walk(self, ref: str) -> Optional[Tuple["Schema", Any]]:
        return resolver.walk(self, ref)

    # ------------------------------------------------------------------ #
    # Validation                                                         #
    # ------------------------------------------------------------------ #
    def validate(self, value: Any) -> bool:
        return validator.first_error(value, self) is None

    def errors(self, value: Any) -> Iterator[validator.SchemaError]:
        """Every violation, lazily; call again for a fresh pass."""
        return validator.iter_errors(value, self)

    def error(self, value: Any) -> Optional[validator.SchemaError]:
        return validator.first_error(value, self)

    def check(self, value: Any) -> None:
        """Raise the first :class:`SchemaError` of *value*, if any."""
        validator.validate(value, schema=self)

    def iter_frame_errors(self, frame: Any) -> Iterator[Tuple[Any, validator.SchemaError]]:
        """Validate each row of a pandas DataFrame as a JSON object.

        Use it for tabular records (a CSV or parquet file read with pandas)
        checked row by row against an object schema, without converting the
        frame to dicts first.  Yields ``(row_label, error)`` pairs, rows in
        frame order.
        """
        for label, record in utils._frame_records(frame):
            for error in self.errors(record):
                yield label, error

    # ------------------------------------------------------------------ #
    # Keyword access                                                     #
    # ------------------------------------------------------------------ #
    def __getitem__(self, keyword: str) -> Any:
        if not isinstance(self.schema, Mapping):
            raise KeyError(keyword)
        return self.schema[keyword]

    def __contains__(self, keyword: object) -> bool:
        return isinstance(self.schema, Mapping) and keyword in self.schema

    def get(self, keyword: str, default: Any = None) -> Any:
        if not isinstance(self.schema, Mapping):
            return default
        return self.schema.get(keyword, default)
