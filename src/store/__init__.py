"""Persistence layer.

This package stores segment and list catalogs, list memberships,
and the JSON helpers shared by the schema store.
"""
