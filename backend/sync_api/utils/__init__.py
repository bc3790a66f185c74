"""Utility helpers for the catalog sync service."""
