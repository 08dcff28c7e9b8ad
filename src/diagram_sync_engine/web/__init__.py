"""Viewer web surface: Starlette routes and SQLite session metadata."""
