from typing import Dict, List, Sequence, Tuple

import asyncpg
from asyncpg import Connection, Pool

from pg_mask.common.constants import SERVER_SETTINGS, FK_ACTIONS
from pg_mask.common.db_queries import (
    get_table_columns_query,
    get_table_constraints_query,
    get_table_indexes_query,
    get_foreign_keys_query,
)
from pg_mask.common.dto import ConnectionParams, ColumnInfo, TableInfo, ForeignKeyInfo
from pg_mask.common.exceptions import SchemaMismatchError
from pg_mask.common.utils import split_table_name


async def create_connection(connection_params: ConnectionParams, server_settings: Dict = SERVER_SETTINGS) -> Connection:
    return await asyncpg.connect(
        **connection_params.as_dict(),
        server_settings=server_settings,
    )


async def create_pool(connection_params: ConnectionParams, server_settings: Dict = SERVER_SETTINGS, min_size: int = 1, max_size: int = 10) -> Pool:
    return await asyncpg.create_pool(
        **connection_params.as_dict(),
        server_settings=server_settings,
        min_size=min(min_size, max_size),
        max_size=max_size,
    )


def normalize_table_name(table: str) -> str:
    schema, name = split_table_name(table)
    return f"{schema}.{name}"


async def get_table_info(connection: Connection, table: str) -> TableInfo:
    """
    Get columns of the table in attribute order
    :param connection: Active connection to db
    :param table: table name, optionally schema qualified
    :return: table metadata
    :raises SchemaMismatchError: if the table does not exist
    """
    schema, name = split_table_name(table)
    rows = await connection.fetch(get_table_columns_query(), schema, name)
    if not rows:
        raise SchemaMismatchError(f"Table {schema}.{name} not found in database")

    return TableInfo(
        table=table,
        columns=[
            ColumnInfo(
                name=row["name"],
                type=row["type"],
                not_null=row["not_null"],
                default=row["default"],
                identity=row["identity"] or "",
                generated=row["generated"] or "",
                serial_sequence=row["serial_sequence"],
            )
            for row in rows
        ],
    )


async def get_table_constraints(connection: Connection, table: str) -> List[Tuple[str, str, str]]:
    """
    Get (name, contype, definition) of PRIMARY KEY, UNIQUE, EXCLUDE, CHECK and FOREIGN KEY constraints
    """
    schema, name = split_table_name(table)
    rows = await connection.fetch(get_table_constraints_query(), schema, name)
    return [(row["name"], row["type"], row["definition"]) for row in rows]


async def get_table_indexes(connection: Connection, table: str) -> List[str]:
    schema, name = split_table_name(table)
    rows = await connection.fetch(get_table_indexes_query(), schema, name)
    return [row["definition"] for row in rows]


async def get_foreign_keys(
        connection: Connection, tables: Sequence[str], referenced: bool = False
) -> List[ForeignKeyInfo]:
    """
    Get foreign keys owned by the given tables
    :param connection: Active connection to db
    :param tables: table names, optionally schema qualified
    :param referenced: get foreign keys referencing the given tables instead
    :return: foreign keys ordered by owning table and constraint name
    """
    rows = await connection.fetch(
        get_foreign_keys_query(referenced),
        [normalize_table_name(table) for table in tables],
    )

    return [
        ForeignKeyInfo(
            name=row["name"],
            table_schema=row["table_schema"],
            table_name=row["table_name"],
            columns=list(row["columns"]),
            referenced_schema=row["referenced_schema"],
            referenced_table=row["referenced_table"],
            referenced_columns=list(row["referenced_columns"]),
            update_rule=FK_ACTIONS.get(row["update_rule"], row["update_rule"]),
            delete_rule=FK_ACTIONS.get(row["delete_rule"], row["delete_rule"]),
            definition=row["definition"],
        )
        for row in rows
    ]
