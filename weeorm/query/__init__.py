"""
Query package for weeorm.

Exports the QueryBuilder and the identifier validation it applies to every
table and column name it renders.
"""

from weeorm.query.builder import QueryBuilder
from weeorm.query.grammar import OPERATORS, validate_identifier

__all__ = [
    "QueryBuilder",
    "OPERATORS",
    "validate_identifier",
]
