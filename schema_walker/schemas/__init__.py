"""Bundled JSON Schema 2020-12 meta-schemas (package data)."""
