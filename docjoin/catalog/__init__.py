"""Catalog of imported tables, relationships and column transform rules."""
