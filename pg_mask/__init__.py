from pg_mask.anonymizer import Anonymizer
from pg_mask.app import PgMaskApp
from pg_mask.blueprint import Blueprint, ColumnRule, DerivedFromRow, Generated, Literal, declare_table
from pg_mask.version import __version__

__all__ = [
    "Anonymizer",
    "Blueprint",
    "ColumnRule",
    "DerivedFromRow",
    "Generated",
    "Literal",
    "PgMaskApp",
    "declare_table",
    "__version__",
]
