"""
loader.py - where schema documents come from.

Public API
----------
load_schema(path)      : read a schema from disk or the bundled package data
load_document(url)     : async, fetch a schema document by absolute URL
LoadError              : raised when a document cannot be fetched or parsed
BUNDLED_SCHEMAS        : URL -> packaged file, served without network access
"""

from __future__ import annotations

import asyncio
import copy
import json
import logging
from importlib import resources
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import urlsplit
from urllib.request import url2pathname

import requests

__all__ = ["BUNDLED_SCHEMAS", "LoadError", "load_document", "load_schema"]

log = logging.getLogger("schema_walker.loader")

REQUEST_TIMEOUT = 30  # seconds, per HTTP request

_DRAFT = "https://json-schema.org/draft/2020-12"

BUNDLED_SCHEMAS: dict[str, str] = {
    f"{_DRAFT}/schema": "draft2020-12.json",
    f"{_DRAFT}/meta/core": "meta_core.json",
    f"{_DRAFT}/meta/applicator": "meta_applicator.json",
    f"{_DRAFT}/meta/unevaluated": "meta_unevaluated.json",
    f"{_DRAFT}/meta/validation": "meta_validation.json",
    f"{_DRAFT}/meta/meta-data": "meta_meta_data.json",
    f"{_DRAFT}/meta/format-annotation": "meta_format_annotation.json",
    f"{_DRAFT}/meta/content": "meta_content.json",
}


class LoadError(OSError):
    """Raised when a foreign schema document cannot be fetched or parsed."""


# --------------------------------------------------------------------------- #
# Helpers                                                                     #
# --------------------------------------------------------------------------- #

def _read(path: Path) -> Mapping[str, Any]:
    """Read & parse a JSON schema, raising crisp errors on failure."""
    try:
        with path.open(encoding="utf-8") as fd:
            return json.load(fd)
    except FileNotFoundError as exc:
        raise FileNotFoundError(f"Schema not found: {path}") from exc
    except json.JSONDecodeError as exc:
        raise ValueError(f"Invalid JSON in {path}: {exc}") from exc


def _read_bundled(name: str) -> Any:
    text = resources.files("schema_walker.schemas").joinpath(name).read_text(encoding="utf-8")
    return json.loads(text)


def _fetch(url: str) -> Any:
    """Blocking fetch of *url*; runs in a worker thread."""
    if url in BUNDLED_SCHEMAS:
        return _read_bundled(BUNDLED_SCHEMAS[url])

    parts = urlsplit(url)
    if parts.scheme in ("http", "https"):
        response = requests.get(url, timeout=REQUEST_TIMEOUT)
        response.raise_for_status()
        return response.json()
    if parts.scheme == "file":
        return _read(Path(url2pathname(parts.path)))
    if not parts.scheme:
        return _read(Path(url))
    raise LoadError(f"Unsupported URL scheme {parts.scheme!r} in {url}")


# --------------------------------------------------------------------------- #
# Public utilities                                                            #
# --------------------------------------------------------------------------- #

def load_schema(path: str | Path) -> Any:
    p = Path(path)

    # 1) direct file on disk ------------------------------------------------
    if p.is_file():
        return copy.deepcopy(_read(p))

    # 2) bundled resource (exact string or basename) -----------------------
    candidates = (BUNDLED_SCHEMAS.get(str(path)), p.name, str(path))
    for name in filter(None, candidates):
        try:
            return _read_bundled(name)
        except (FileNotFoundError, IsADirectoryError):
            pass   # try the next candidate

    # 3) give up -----------------------------------------------------------
    raise FileNotFoundError(
        f"Schema '{path}' not found on disk or in package data"
    )


async def load_document(url: str) -> Any:
    """Fetch the JSON document at *url*.

    ``http``/``https`` go through :mod:`requests`, ``file://`` URLs and bare
    paths are read from disk, and the 2020-12 meta-schemas are served from
    the package.  Any failure surfaces as :class:`LoadError`.
    """
    log.info("fetching schema document %s", url)
    try:
        return await asyncio.to_thread(_fetch, url)
    except LoadError:
        raise
    except (requests.RequestException, OSError, ValueError) as exc:
        raise LoadError(f"Could not load schema document {url}: {exc}") from exc
