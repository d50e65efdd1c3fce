from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pg_mask.blueprint import Blueprint, ColumnRule
from pg_mask.common.constants import ROW_FILTER_COLUMN_PREFIX
from pg_mask.common.dto import TableInfo
from pg_mask.common.exceptions import SchemaMismatchError
from pg_mask.common.utils import quote_ident, quote_table_name, render_query
from pg_mask.resolver import ValueResolver


@dataclass
class Statement:
    query: str
    args: Tuple = ()

    def __str__(self):
        return render_query(self.query, self.args)


class MutationPlanner:
    """
    Builds SELECT / UPDATE / INSERT statements of a blueprint.

    Values travel as positional arguments. Replacement values are sent as text and cast into
    the column type when the table metadata is known, so "42" fills an integer column the
    same way the literal '42' would. Copied values and primary key values keep their
    original Python type.
    """

    def __init__(self, resolver: ValueResolver, tables_info: Optional[Dict[str, TableInfo]] = None):
        self.resolver = resolver
        self.tables_info: Dict[str, TableInfo] = tables_info if tables_info is not None else {}

    def plan_select(
            self,
            blueprint: Blueprint,
            full_row_needed: bool = False,
            with_row_filters: bool = False,
    ) -> Statement:
        if full_row_needed or blueprint.needs_full_row:
            columns = "*"
        else:
            names = list(dict.fromkeys(blueprint.primary_key + blueprint.column_names))
            columns = ", ".join(quote_ident(name) for name in names)

        if with_row_filters:
            filter_columns = self.filter_columns(blueprint)
            columns += "".join(
                f", ({rule.where}) AS {quote_ident(filter_columns[rule.name])}"
                for rule in blueprint.columns
                if rule.name in filter_columns
            )

        query = f"SELECT {columns} FROM {quote_table_name(blueprint.table)}"

        global_filter = blueprint.global_filter
        if global_filter:
            query += f" WHERE {global_filter}"

        return Statement(query)

    def plan_update(
            self,
            blueprint: Blueprint,
            primary_key_values: Mapping[str, Any],
            columns: Sequence[ColumnRule],
            row_index: int,
            row: Mapping[str, Any],
    ) -> Statement:
        if not columns:
            raise ValueError(f"Nothing to update in table {blueprint.table}")

        args: List[Any] = []
        set_parts = []
        self.resolver.new_row(row)

        for rule in columns:
            args.append(self.resolver.resolve_value(rule, row, row_index))
            value = self._value_placeholder(blueprint.table, rule.name, len(args))
            column = quote_ident(rule.name)

            if rule.where:
                set_parts.append(f"{column} = (CASE WHEN {rule.where} THEN {value} ELSE {column} END)")
            else:
                set_parts.append(f"{column} = {value}")

        where_parts = []
        for key, key_value in primary_key_values.items():
            args.append(key_value)
            where_parts.append(f"{quote_ident(key)} = ${len(args)}")

        query = (
            f"UPDATE {quote_table_name(blueprint.table)} "
            f"SET {', '.join(set_parts)} "
            f"WHERE {' AND '.join(where_parts)}"
        )
        return Statement(query, tuple(args))

    def plan_insert(
            self,
            blueprint: Blueprint,
            columns: Sequence[ColumnRule],
            row_index: int,
            row: Mapping[str, Any],
    ) -> Statement:
        """
        Copy of the row with the rule columns replaced.

        A column with a row filter is replaced only when the row carries a true filter
        flag (see ``plan_select(with_row_filters=True)``), otherwise its value is copied.
        """
        table_info = self.tables_info.get(blueprint.table)
        filter_columns = self.filter_columns(blueprint)
        names: List[str] = []
        placeholders: List[str] = []
        args: List[Any] = []
        self.resolver.new_row(row)

        for rule in columns:
            value = self.resolver.resolve_value(rule, row, row_index)
            names.append(rule.name)

            filter_column = filter_columns.get(rule.name)
            if filter_column is not None and row.get(filter_column) is not True:
                args.append(row.get(rule.name))
                placeholders.append(f"${len(args)}")
            else:
                args.append(value)
                placeholders.append(self._value_placeholder(blueprint.table, rule.name, len(args)))

        skipped = {rule.name for rule in columns} | set(filter_columns.values())
        for name, value in row.items():
            if name in skipped or (table_info and table_info.is_generated(name)):
                continue
            args.append(value)
            names.append(name)
            placeholders.append(f"${len(args)}")

        overriding = " OVERRIDING SYSTEM VALUE" if table_info and table_info.has_identity else ""
        query = (
            f"INSERT INTO {quote_table_name(blueprint.table)} "
            f"({', '.join(quote_ident(name) for name in names)}){overriding} "
            f"VALUES ({', '.join(placeholders)})"
        )
        return Statement(query, tuple(args))

    @staticmethod
    def filter_columns(blueprint: Blueprint) -> Dict[str, str]:
        """
        Names of the selected row filter flags by rule column
        """
        return {
            rule.name: f"{ROW_FILTER_COLUMN_PREFIX}{position}"
            for position, rule in enumerate(blueprint.columns)
            if rule.where
        }

    @staticmethod
    def primary_key_values(blueprint: Blueprint, row: Mapping[str, Any]) -> Dict[str, Any]:
        missing = [key for key in blueprint.primary_key if key not in row.keys()]
        if missing:
            raise SchemaMismatchError(
                f"Primary key column(s) {', '.join(missing)} not found in table {blueprint.table}"
            )
        return {key: row[key] for key in blueprint.primary_key}

    def _value_placeholder(self, table: str, column: str, position: int) -> str:
        table_info = self.tables_info.get(table)
        column_type = table_info.column_type(column) if table_info else None
        if not column_type:
            return f"${position}"
        return f"${position}::text::{column_type}"
