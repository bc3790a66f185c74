"""Typer CLI for the catalog sync API."""
