"""Field schema layer.

This package merges built-in and custom field descriptors and persists
custom field definitions used by filter validation and evaluation.
"""
