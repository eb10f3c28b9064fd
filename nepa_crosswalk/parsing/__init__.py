"""Readers for CSV, YAML and JSON source files."""
