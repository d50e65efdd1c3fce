from typing import Iterable, List, Optional, Sequence, Tuple

from asyncpg import Connection

from pg_mask.common.db_utils import get_table_info, get_table_constraints, get_table_indexes
from pg_mask.common.dto import ColumnInfo, TableInfo, ForeignKeyInfo
from pg_mask.common.exceptions import SchemaMismatchError
from pg_mask.common.utils import quote_ident, quote_table_name

SERIAL_TYPES = {
    "smallint": "smallserial",
    "integer": "serial",
    "bigint": "bigserial",
}

CLAUSE_SEPARATOR = ",\n    "


def column_definition(column: ColumnInfo) -> str:
    parts = [quote_ident(column.name)]

    if column.identity:
        parts.append(column.type)
        parts.append(
            "GENERATED ALWAYS AS IDENTITY" if column.identity == "a" else "GENERATED BY DEFAULT AS IDENTITY"
        )
    elif column.generated:
        parts.append(column.type)
        parts.append(f"GENERATED ALWAYS AS ({column.default}) STORED")
    elif column.serial_sequence and column.default and column.default.startswith("nextval("):
        # the target gets its own sequence, advanced after the load
        parts.append(SERIAL_TYPES.get(column.type, column.type))
    else:
        parts.append(column.type)
        if column.default is not None:
            parts.append(f"DEFAULT {column.default}")

    if column.not_null:
        parts.append("NOT NULL")

    return " ".join(parts)


def build_create_table_statement(table_info: TableInfo, constraints: Sequence[Tuple[str, str, str]]) -> str:
    """
    Creation statement of the table, one column or constraint clause per line
    :param table_info: columns of the table
    :param constraints: (name, contype, definition) of table constraints
    :return: CREATE TABLE statement
    """
    clauses = [column_definition(column) for column in table_info.columns]
    clauses += [f"CONSTRAINT {quote_ident(name)} {definition}" for name, _, definition in constraints]

    return (
        f"CREATE TABLE {quote_table_name(table_info.table)} (\n    "
        + CLAUSE_SEPARATOR.join(clauses)
        + "\n)"
    )


async def get_create_table_statement(
        connection: Connection,
        table: str,
        table_info: Optional[TableInfo] = None,
) -> Tuple[str, List[str]]:
    """
    Read the creation statement of a table from the catalogs
    :param connection: Active connection to db
    :param table: table name, optionally schema qualified
    :param table_info: columns of the table, read when omitted
    :return: (CREATE TABLE statement, CREATE INDEX statements of indexes not backing a constraint)
    """
    if table_info is None:
        table_info = await get_table_info(connection, table)

    constraints = await get_table_constraints(connection, table)
    indexes = await get_table_indexes(connection, table)
    return build_create_table_statement(table_info, constraints), indexes


def strip_constraints(create_statement: str, clauses: Iterable[str]) -> str:
    """
    Remove constraint clauses from a creation statement by literal text match
    :raises SchemaMismatchError: if a clause is not part of the statement
    """
    for clause in clauses:
        needle = CLAUSE_SEPARATOR + clause
        if needle not in create_statement:
            raise SchemaMismatchError(f"Constraint clause not found in creation statement: {clause}")
        create_statement = create_statement.replace(needle, "", 1)

    return create_statement


def split_foreign_keys(
        foreign_keys: Iterable[ForeignKeyInfo],
        selected_tables: Iterable[str],
) -> Tuple[List[ForeignKeyInfo], List[ForeignKeyInfo]]:
    """
    Split foreign keys into those among the selected tables (self references included)
    and those pointing outside of the selection
    :param foreign_keys: foreign keys owned by selected tables
    :param selected_tables: normalized "schema.table" names
    :return: (restorable, dropped)
    """
    selected = set(selected_tables)
    restorable, dropped = [], []
    for foreign_key in foreign_keys:
        if foreign_key.referenced in selected:
            restorable.append(foreign_key)
        else:
            dropped.append(foreign_key)
    return restorable, dropped
