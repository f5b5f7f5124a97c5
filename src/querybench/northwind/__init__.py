"""Northwind-style fixture schema, seed data and the query comparison catalog."""

from querybench.northwind.catalog import QUERIES, QuerySpec, register_catalog
from querybench.northwind.seed import NorthwindInputs, seed_database

__all__ = [
    "QUERIES",
    "QuerySpec",
    "register_catalog",
    "NorthwindInputs",
    "seed_database",
]
