"""
validator.py - the recursive JSON Schema 2020-12 validation engine
==================================================================

``iter_errors`` walks a value and a schema node together and yields one
:class:`SchemaError` per violation.  The stream is lazy and finite; it is
*not* restartable, so call again for a fresh pass.  ``first_error`` stops
at the first violation.

Public API
----------
SchemaError
    One validation failure.  Yielded, never raised, by ``iter_errors``.

iter_errors(value, schema) -> Iterator[SchemaError]
    Every violation of *value* against *schema* (a ``Schema`` or raw node).

first_error(value, schema) -> SchemaError | None
    Short-circuiting query.

validate(value, *, schema)
    Raise the first :class:`SchemaError`, if any.

Per node the engine: (1) handles boolean schemas, (2) classifies the value,
(3) opens an evaluated set when ``unevaluated*`` is present, (4) runs every
recognised, type-relevant keyword, (5) runs the object / array structural
validator, and (6) checks whatever is still unevaluated.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Mapping
from fractions import Fraction
from functools import lru_cache
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple
from urllib.parse import unquote

from . import formats, resolver, utils
from .tracker import EvaluationTracker

__all__ = [
    "SchemaError",
    "first_error",
    "iter_errors",
    "validate",
]

log = logging.getLogger("schema_walker.validator")

Path = Tuple[Any, ...]

# --------------------------------------------------------------------------- #
# Error record                                                                #
# --------------------------------------------------------------------------- #

class SchemaError(ValueError):
    """Raised (or yielded) when a value violates the supplied schema.

    Attributes
    ----------
    message      : human readable description
    value        : the offending value
    keyword      : the schema keyword that failed (``None`` for ``false``)
    schema_value : that keyword's value in the schema
    path         : data path, a tuple of keys / indices from the root value
    schema_path  : schema path, a tuple of keywords / names / indices
    """

    def __init__(
        self,
        message: str,
        *,
        value: Any = None,
        keyword: Optional[str] = None,
        schema_value: Any = None,
        path: Path = (),
        schema_path: Path = (),
    ):
        super().__init__(message)
        self.message = message
        self.value = value
        self.keyword = keyword
        self.schema_value = schema_value
        self.path = tuple(path)
        self.schema_path = tuple(schema_path)

    def __str__(self) -> str:
        return f"{utils._dotted(self.path)}: {self.message}"

    def __repr__(self) -> str:
        return f"<SchemaError {self.keyword!r} at {self.json_pointer or '/'}: {self.message}>"

    @property
    def json_pointer(self) -> str:
        return utils._pointer(self.path)


# --------------------------------------------------------------------------- #
# Call context                                                                #
# --------------------------------------------------------------------------- #

class _Context:
    """Mutable state of one top-level validation call."""

    __slots__ = ("tracker", "scopes", "active", "format_assertion")

    def __init__(self, document: Any, *, format_assertion: bool = True):
        self.tracker = EvaluationTracker()
        self.scopes: List[Any] = [document]   # dynamic scope, outermost first
        self.active: set = set()              # references being followed
        self.format_assertion = format_assertion

    @property
    def document(self) -> Any:
        return self.scopes[-1]

    def resource_for(self, node: Mapping) -> Optional[Any]:
        if "$id" not in node:
            return None
        resource = self.document._tree.by_node.get(id(node))
        return None if resource is self.document else resource


def _error(message: str, value: Any, keyword: Optional[str], node: Any, path: Path, schema_path: Path) -> SchemaError:
    return SchemaError(
        message,
        value=value,
        keyword=keyword,
        schema_value=node.get(keyword) if keyword and isinstance(node, Mapping) else node,
        path=path,
        schema_path=schema_path + ((keyword,) if keyword else ()),
    )


def _passes(value: Any, node: Any, ctx: _Context, path: Path, schema_path: Path) -> bool:
    """True iff *node* yields no error for *value* (stops at the first one)."""
    errors = _errors(value, node, ctx, path, schema_path)
    try:
        return next(errors, None) is None
    finally:
        errors.close()


def _drain(value: Any, node: Any, ctx: _Context, path: Path, schema_path: Path) -> int:
    """Count the errors of *node* for *value*, evaluating every keyword."""
    return sum(1 for _ in _errors(value, node, ctx, path, schema_path))


# --------------------------------------------------------------------------- #
# Predicate keywords                                                          #
# --------------------------------------------------------------------------- #

@lru_cache(maxsize=None)
def _regex(pattern: str) -> re.Pattern:
    return re.compile(pattern)


def _type(expected: Any, value: Any, ctx: _Context) -> bool:
    allowed = expected if isinstance(expected, list) else [expected]
    return any(utils._matches_type(t, value) for t in allowed)


def _multiple_of(divisor: Any, value: Any) -> bool:
    if isinstance(value, int) and isinstance(divisor, int):
        return value % divisor == 0
    try:
        quotient = value / divisor
    except OverflowError:
        quotient = float("inf")
    if quotient == quotient and abs(quotient) != float("inf"):
        if float(quotient).is_integer() and quotient * divisor == value:
            return True
    # the float quotient lies for fractional divisors (19.99 / 0.01); redo it
    # exactly on the decimal representations
    exact = Fraction(repr(value)) / Fraction(repr(divisor))
    return exact.denominator == 1


_PREDICATES: Dict[str, Callable[[Any, Any, _Context], bool]] = {
    "type": _type,
    "enum": lambda allowed, v, ctx: any(utils._equal(a, v) for a in allowed),
    "const": lambda const, v, ctx: utils._equal(const, v),
    # number
    "multipleOf": lambda m, v, ctx: _multiple_of(m, v),
    "minimum": lambda lo, v, ctx: v >= lo,
    "maximum": lambda hi, v, ctx: v <= hi,
    "exclusiveMinimum": lambda lo, v, ctx: v > lo,
    "exclusiveMaximum": lambda hi, v, ctx: v < hi,
    # string
    "minLength": lambda n, v, ctx: len(v) >= n,
    "maxLength": lambda n, v, ctx: len(v) <= n,
    "pattern": lambda p, v, ctx: _regex(p).search(v) is not None,
    "format": lambda f, v, ctx: not ctx.format_assertion or formats.check_format(f, v),
}

_RELEVANT: Dict[str, str] = {
    "multipleOf": "number",
    "minimum": "number",
    "maximum": "number",
    "exclusiveMinimum": "number",
    "exclusiveMaximum": "number",
    "minLength": "string",
    "maxLength": "string",
    "pattern": "string",
    "format": "string",
}

_MESSAGES: Dict[str, str] = {
    "type": "expected {allowed}, got {kind}",
    "enum": "{value!r} not in {expected!r}",
    "const": "{value!r} is not the constant {expected!r}",
    "multipleOf": "{value!r} is not a multiple of {expected!r}",
    "minimum": "{value!r} is less than the minimum of {expected!r}",
    "maximum": "{value!r} is greater than the maximum of {expected!r}",
    "exclusiveMinimum": "{value!r} is not greater than {expected!r}",
    "exclusiveMaximum": "{value!r} is not less than {expected!r}",
    "minLength": "{value!r} is shorter than {expected!r} characters",
    "maxLength": "{value!r} is longer than {expected!r} characters",
    "pattern": "{value!r} does not match {expected!r}",
    "format": "{value!r} is not a valid {expected!r}",
}


def _predicate_message(keyword: str, expected: Any, value: Any) -> str:
    allowed = expected if isinstance(expected, list) else [expected]
    return _MESSAGES[keyword].format(value=value, expected=expected, allowed=allowed, kind=type(value).__name__)


# --------------------------------------------------------------------------- #
# Applicator keywords                                                         #
# --------------------------------------------------------------------------- #

def _target(ctx: _Context, node: Mapping, keyword: str, ref: str) -> Optional[Tuple[Any, Any]]:
    document = ctx.document
    target = document._tree.refs.get((id(node), keyword))
    if target is not None:
        return target
    target = resolver.walk(document, ref)
    if target is None:
        log.error("%s %r could not be resolved; keyword ignored", keyword, ref)
    elif not ref.startswith("#"):
        log.warning("%s %r followed without a prior deref()", keyword, ref)
    return target


def _follow(target: Tuple[Any, Any], node: Mapping, keyword: str, value: Any, ctx: _Context,
            path: Path, schema_path: Path) -> Iterator[SchemaError]:
    document, sub = target
    key = (id(node), keyword, id(value))
    if key in ctx.active:
        log.warning("reference cycle through %s %r cut", keyword, node[keyword])
        return
    ctx.active.add(key)
    ctx.scopes.append(document)
    try:
        yield from _errors(value, sub, ctx, path, schema_path + (keyword,))
    finally:
        ctx.scopes.pop()
        ctx.active.discard(key)


def _ref(ref, value, node, ctx, path, schema_path):
    target = _target(ctx, node, "$ref", ref)
    if target is not None:
        yield from _follow(target, node, "$ref", value, ctx, path, schema_path)


def _dynamic_ref(ref, value, node, ctx, path, schema_path):
    target = _target(ctx, node, "$dynamicRef", ref)
    anchor = unquote(ref.partition("#")[2])
    if target is not None and anchor and "/" not in anchor:
        static = target[1]
        # only a target that is itself a dynamic anchor may be overridden
        if isinstance(static, Mapping) and static.get("$dynamicAnchor") == anchor:
            for scope in ctx.scopes:
                override = scope.dynamic_anchors.get(anchor)
                if override is not None:
                    target = (scope, override)
                    break
    if target is not None:
        yield from _follow(target, node, "$dynamicRef", value, ctx, path, schema_path)


def _all_of(branches, value, node, ctx, path, schema_path):
    for i, sub in enumerate(branches):
        yield from _errors(value, sub, ctx, path, schema_path + ("allOf", i))


def _any_of(branches, value, node, ctx, path, schema_path):
    collecting = ctx.tracker.active(value)
    passed = False
    for i, sub in enumerate(branches):
        with ctx.tracker.branch() as branch:
            branch.commit = _passes(value, sub, ctx, path, schema_path + ("anyOf", i))
        if branch.commit:
            passed = True
            if not collecting:
                break
    if not passed:
        yield _error("does not match any schema in anyOf", value, "anyOf", node, path, schema_path)


def _one_of(branches, value, node, ctx, path, schema_path):
    passing: List[int] = []
    for i, sub in enumerate(branches):
        with ctx.tracker.branch() as branch:
            branch.commit = _passes(value, sub, ctx, path, schema_path + ("oneOf", i))
        if branch.commit:
            passing.append(i)
    if len(passing) != 1:
        detail = f"matches oneOf schemas {passing}" if passing else "does not match any schema in oneOf"
        yield _error(f"{detail} (exactly one required)", value, "oneOf", node, path, schema_path)


def _not(sub, value, node, ctx, path, schema_path):
    with ctx.tracker.suppressed():
        ok = _passes(value, sub, ctx, path, schema_path + ("not",))
    if ok:
        yield _error(f"{value!r} should not be valid under {sub!r}", value, "not", node, path, schema_path)


def _if(condition, value, node, ctx, path, schema_path):
    then, otherwise = node.get("then"), node.get("else")
    if then is None and otherwise is None and not ctx.tracker.active(value):
        return
    # the condition runs to completion so all of its claims count, pass or fail
    if _drain(value, condition, ctx, path, schema_path + ("if",)) == 0:
        if then is not None:
            yield from _errors(value, then, ctx, path, schema_path + ("then",))
    elif otherwise is not None:
        yield from _errors(value, otherwise, ctx, path, schema_path + ("else",))


_APPLICATORS: Dict[str, Callable[..., Iterator[SchemaError]]] = {
    "$ref": _ref,
    "$dynamicRef": _dynamic_ref,
    "allOf": _all_of,
    "anyOf": _any_of,
    "oneOf": _one_of,
    "not": _not,
    "if": _if,
}

_APPLICATOR_SHAPES: Dict[str, Any] = {
    "$ref": str,
    "$dynamicRef": str,
    "allOf": list,
    "anyOf": list,
    "oneOf": list,
    "not": (Mapping, bool),
    "if": (Mapping, bool),
}


# --------------------------------------------------------------------------- #
# Structural validators                                                       #
# --------------------------------------------------------------------------- #

_COUNT = (int, float)


def _shaped(node: Mapping, keyword: str, shape: Any, default: Any) -> Any:
    """The value of *keyword* if it has the expected shape, else *default* (logged)."""
    if keyword not in node:
        return default
    expected = node[keyword]
    if isinstance(expected, bool) or not isinstance(expected, shape):
        log.error("malformed %s keyword %r ignored", keyword, expected)
        return default
    return expected


def _object(node: Mapping, value: Mapping, ctx: _Context, path: Path, schema_path: Path) -> Iterator[SchemaError]:
    keys = list(value)

    # 1) whole-object keywords ---------------------------------------------
    low = _shaped(node, "minProperties", _COUNT, None)
    if low is not None and len(keys) < low:
        yield _error(f"has fewer than {low} properties", value, "minProperties", node, path, schema_path)
    high = _shaped(node, "maxProperties", _COUNT, None)
    if high is not None and len(keys) > high:
        yield _error(f"has more than {high} properties", value, "maxProperties", node, path, schema_path)

    missing = [name for name in _shaped(node, "required", list, ()) if name not in value]
    if missing:
        yield _error(f"missing required {missing}", value, "required", node, path, schema_path)

    for trigger, needed in _shaped(node, "dependentRequired", Mapping, {}).items():
        if not isinstance(needed, list):
            log.error("malformed dependentRequired entry %r: %r ignored", trigger, needed)
            continue
        if trigger in value:
            for name in needed:
                if name not in value:
                    yield _error(
                        f"missing property {name!r} required by {trigger!r}",
                        value, "dependentRequired", node, path, schema_path,
                    )

    for trigger, sub in _shaped(node, "dependentSchemas", Mapping, {}).items():
        if trigger in value:
            yield from _errors(value, sub, ctx, path, schema_path + ("dependentSchemas", trigger))

    # 2) per-property keywords ---------------------------------------------
    properties = node.get("properties")
    if not isinstance(properties, Mapping):
        properties = {}
    patterns = []
    for pattern, sub in _shaped(node, "patternProperties", Mapping, {}).items():
        try:
            patterns.append((pattern, _regex(pattern), sub))
        except re.error as exc:
            log.error("invalid patternProperties regex %r ignored: %s", pattern, exc)
    names = node.get("propertyNames")
    additional = node.get("additionalProperties")

    for key in keys:
        child, child_path = value[key], path + (key,)
        if names is not None:
            yield from _errors(key, names, ctx, path, schema_path + ("propertyNames",))

        matched = False
        if key in properties:
            yield from _errors(child, properties[key], ctx, child_path, schema_path + ("properties", key))
            matched = True
        for pattern, regex, sub in patterns:
            if regex.search(key):
                yield from _errors(child, sub, ctx, child_path, schema_path + ("patternProperties", pattern))
                matched = True
        if not matched and additional is not None:
            if additional is False:
                yield _error(f"unexpected property {key!r} is not allowed", child, "additionalProperties",
                             node, child_path, schema_path)
            else:
                yield from _errors(child, additional, ctx, child_path, schema_path + ("additionalProperties",))
            matched = True
        if matched:
            ctx.tracker.claim(value, key)


def _array(node: Mapping, value: list, ctx: _Context, path: Path, schema_path: Path) -> Iterator[SchemaError]:
    # 1) whole-array keywords ----------------------------------------------
    low = _shaped(node, "minItems", _COUNT, None)
    if low is not None and len(value) < low:
        yield _error(f"has fewer than {low} items", value, "minItems", node, path, schema_path)
    high = _shaped(node, "maxItems", _COUNT, None)
    if high is not None and len(value) > high:
        yield _error(f"has more than {high} items", value, "maxItems", node, path, schema_path)

    if node.get("uniqueItems") is True:
        seen: Dict[str, int] = {}
        for i, item in enumerate(value):
            key = utils._canonical(item)
            if key in seen:
                yield _error(f"items {seen[key]} and {i} are equal", value, "uniqueItems", node, path, schema_path)
            else:
                seen[key] = i

    # 2) per-item keywords -------------------------------------------------
    prefix = node.get("prefixItems")
    if not isinstance(prefix, list):
        prefix = []
    items = node.get("items")
    if not isinstance(items, (Mapping, bool)):
        items = None
    contains = node.get("contains")
    matches = 0

    for i, item in enumerate(value):
        item_path = path + (i,)
        evaluated = False
        if i < len(prefix):
            yield from _errors(item, prefix[i], ctx, item_path, schema_path + ("prefixItems", i))
            evaluated = True
        elif items is not None:
            if items is False:
                yield _error(f"unexpected item at index {i} is not allowed", item, "items", node, item_path, schema_path)
            else:
                yield from _errors(item, items, ctx, item_path, schema_path + ("items",))
            evaluated = True
        if contains is not None and _passes(item, contains, ctx, item_path, schema_path + ("contains",)):
            matches += 1
            evaluated = True
        if evaluated:
            ctx.tracker.claim(value, i)

    # 3) contains bounds ---------------------------------------------------
    if contains is not None:
        low = _shaped(node, "minContains", _COUNT, 1)
        high = _shaped(node, "maxContains", _COUNT, None)
        if matches < low:
            yield _error(f"only {matches} items match contains (at least {low} required)",
                         value, "contains", node, path, schema_path)
        if high is not None and matches > high:
            yield _error(f"{matches} items match contains (at most {high} allowed)",
                         value, "maxContains", node, path, schema_path)


# --------------------------------------------------------------------------- #
# Core recursive validator                                                    #
# --------------------------------------------------------------------------- #

def _errors(value: Any, node: Any, ctx: _Context, path: Path = (), schema_path: Path = ()) -> Iterator[SchemaError]:
    if node is True:
        return
    if node is False:
        yield SchemaError("false schema allows nothing", value=value, schema_value=False,
                          path=path, schema_path=schema_path)
        return
    if not isinstance(node, Mapping):
        log.error("schema node at %s is %s, not an object or boolean; ignored",
                  utils._pointer(schema_path) or "/", type(node).__name__)
        return

    resource = ctx.resource_for(node)
    if resource is not None:
        ctx.scopes.append(resource)
    try:
        yield from _node_errors(value, node, ctx, path, schema_path)
    finally:
        if resource is not None:
            ctx.scopes.pop()


def _node_errors(value: Any, node: Mapping, ctx: _Context, path: Path, schema_path: Path) -> Iterator[SchemaError]:
    # 1) classify ------------------------------------------------------------
    kind = utils._json_type(value)
    finite = utils._is_finite(value)
    if node.get("deprecated") is True:
        log.warning("%s is validated against a deprecated schema at %s",
                    utils._dotted(path), utils._pointer(schema_path) or "/")

    # 2) open an evaluated set --------------------------------------------
    tracked = None
    if kind == "object" and "unevaluatedProperties" in node:
        tracked = "unevaluatedProperties"
    elif kind == "array" and "unevaluatedItems" in node:
        tracked = "unevaluatedItems"
    if tracked:
        ctx.tracker.begin(value)
    tracking = bool(tracked)

    try:
        # 3) keyword dispatch -------------------------------------------------
        for keyword, expected in node.items():
            applicator = _APPLICATORS.get(keyword)
            if applicator is not None:
                shape = _APPLICATOR_SHAPES.get(keyword)
                if shape is not None and not isinstance(expected, shape):
                    log.error("malformed %s keyword %r ignored", keyword, expected)
                    continue
                yield from applicator(expected, value, node, ctx, path, schema_path)
                continue

            check = _PREDICATES.get(keyword)
            if check is None:
                continue
            relevant = _RELEVANT.get(keyword)
            if relevant is not None and (kind != relevant or not finite):
                continue
            try:
                ok = check(expected, value, ctx)
            except (TypeError, ValueError, ArithmeticError, re.error) as exc:
                log.error("malformed %s keyword %r ignored: %s", keyword, expected, exc)
                continue
            if not ok:
                yield _error(_predicate_message(keyword, expected, value),
                             value, keyword, node, path, schema_path)

        # 4) structural validators ---------------------------------------------
        if kind == "object":
            yield from _object(node, value, ctx, path, schema_path)
        elif kind == "array":
            yield from _array(node, value, ctx, path, schema_path)

        # 5) unevaluated properties / items ------------------------------------
        if tracked:
            remaining = list(ctx.tracker.remaining(value))
            ctx.tracker.end(value)
            tracking = False
            sub = node[tracked]
            label = "property" if tracked == "unevaluatedProperties" else "item"
            for key in remaining:
                child_path = path + (key,)
                if sub is False:
                    yield _error(f"unevaluated {label} {key!r} is not allowed",
                                 value[key], tracked, node, child_path, schema_path)
                else:
                    yield from _errors(value[key], sub, ctx, child_path, schema_path + (tracked,))
                ctx.tracker.claim(value, key)
    finally:
        if tracking:
            ctx.tracker.end(value)


# --------------------------------------------------------------------------- #
# Public entry points                                                         #
# --------------------------------------------------------------------------- #

def _as_document(schema: Any) -> Any:
    from .document import Schema

    if isinstance(schema, Schema):
        return schema
    return Schema(schema, registry=resolver.SchemaRegistry())


def iter_errors(value: Any, schema: Any) -> Iterator[SchemaError]:
    """Yield every violation of *value* against *schema*."""
    document = _as_document(schema)
    ctx = _Context(document, format_assertion=document.format_assertion)
    return _errors(value, document.schema, ctx)


def first_error(value: Any, schema: Any) -> Optional[SchemaError]:
    """Return the first violation, or ``None`` when *value* is valid."""
    errors = iter_errors(value, schema)
    try:
        return next(errors, None)
    finally:
        errors.close()


def validate(value: Any, *, schema: Any) -> None:
    """Assert that *value* satisfies *schema*, raising :class:`SchemaError`."""
    error = first_error(value, schema)
    if error is not None:
        raise error
