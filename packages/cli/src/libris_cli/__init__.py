"""Libris CLI."""
