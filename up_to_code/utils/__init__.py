"""Shared infrastructure: HTTP pool, request cache, subprocess runner, logging."""
