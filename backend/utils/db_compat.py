"""
Database compatibility helpers for SQLite and PostgreSQL.
"""
from sqlalchemy import func, extract
from backend.database import is_sqlite


def year_equals(column, year: int):
    """Filter: date column's year equals given year."""
    if is_sqlite:
        return func.strftime("%Y", column) == str(year)
    return extract("year", column) == year


def month_equals(column, month: int):
    """Filter: date column's month equals given month."""
    if is_sqlite:
        return func.strftime("%m", column) == f"{month:02d}"
    return extract("month", column) == month
