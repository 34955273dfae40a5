"""
Generic entity query layer

Typed table schemas, column domains, and a builder that renders criteria
into parameterized SQL with paging and counting.
"""

from .columns import (
    ColumnDomain, TextDomain, IntegerDomain, NumberDomain, BooleanDomain,
    DateDomain, EnumColumnDomain, ParseResult,
    TEXT, INTEGER, NUMBER, BOOLEAN, DATE,
)
from .tables import Column, EntityTable, EQUALS, CONTAINS
from .result import QueryOptions, QueryResult, parse_flags, parse_op, DEFAULT_LIMIT, MAX_LIMIT
from .builder import QueryBuilder

__all__ = [
    'ColumnDomain', 'TextDomain', 'IntegerDomain', 'NumberDomain', 'BooleanDomain',
    'DateDomain', 'EnumColumnDomain', 'ParseResult',
    'TEXT', 'INTEGER', 'NUMBER', 'BOOLEAN', 'DATE',
    'Column', 'EntityTable', 'EQUALS', 'CONTAINS',
    'QueryOptions', 'QueryResult', 'parse_flags', 'parse_op', 'DEFAULT_LIMIT', 'MAX_LIMIT',
    'QueryBuilder',
]
