"""Catalog sync backend packages."""
