"""
schema_walker – JSON Schema 2020-12 validation with reference resolution.
"""
from .document import Schema
from .loader import LoadError
from .resolver import SchemaRegistry, SchemaStructureError, default_registry
from .validator import SchemaError, first_error, iter_errors, validate

__all__ = [
    "LoadError",
    "Schema",
    "SchemaError",
    "SchemaRegistry",
    "SchemaStructureError",
    "default_registry",
    "first_error",
    "iter_errors",
    "validate",
]
