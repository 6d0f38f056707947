"""
Integration tests package.

Repositories, the period close and the HTTP API against an in-memory
SQLite database.
"""
