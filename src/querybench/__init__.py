"""
querybench: database access strategy benchmark

Compares query latency of equivalent queries issued through:
- raw psycopg (plain and server-side prepared)
- SQLAlchemy Core query builder (rebuilt per call and compiled once)
- SQLAlchemy ORM
- asyncpg pool

Each strategy gets its own disposable PostgreSQL instance.
"""

__version__ = "0.1.0"
__author__ = "querybench maintainers"

__all__ = ["__version__", "__author__"]
