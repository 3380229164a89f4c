"""Filter expression engine.

This package defines the condition/group/expression model, per-type
operator catalogs, storable criteria encoding, and record evaluation.
"""
