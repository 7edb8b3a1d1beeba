"""PostgreSQL connector."""

from .connector import PostgresConnector

__all__ = ["PostgresConnector"]
