"""Database-agnostic column types shared by the models.

Everything here works on both SQLite (local runs, tests) and PostgreSQL.
"""
from sqlalchemy import Numeric
from sqlalchemy.dialects.postgresql import UUID as PG_UUID

# PG_UUID falls back to CHAR(32) storage on backends without a native UUID type
UUIDType = PG_UUID


def Money():
    """Fixed-point money column type (15 digits, 2 decimals)."""
    return Numeric(15, 2)


def Quantity():
    return Numeric(12, 3)


def Rate():
    """Percentage rate column type, e.g. 18.00 for 18% GST."""
    return Numeric(5, 2)
