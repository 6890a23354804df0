"""CLI sub-commands grouped by domain."""
