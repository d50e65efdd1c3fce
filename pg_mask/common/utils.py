import importlib.util
import re
import sys
import traceback
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

import yaml

from pg_mask.common.constants import DEFAULT_SCHEMA, TRACEBACK_LINES_COUNT
from pg_mask.common.exceptions import ConfigurationError


def exception_helper(show_traceback=True):
    exc_type, exc_value, exc_traceback = sys.exc_info()
    return "\n".join(
        [
            v
            for v in traceback.format_exception(
                exc_type, exc_value, exc_traceback if show_traceback else None
            )
        ]
    )


def exception_to_str(exc: Exception, limit: int = TRACEBACK_LINES_COUNT) -> str:
    tb_exc = traceback.TracebackException.from_exception(exc)
    lines = list(tb_exc.format())
    return "".join(lines[-limit:])


def read_yaml(file_path: Union[str, Path]) -> Dict:
    path = Path(file_path)
    if path.suffix not in ('.yml', '.yaml'):
        raise ValueError("File must be .yml or .yaml")

    with open(path.absolute(), "r") as file:
        data = yaml.safe_load(file)

    return data or {}


def parse_comma_separated_list(value: str = None) -> Optional[List[str]]:
    if not value:
        return None

    return [item.strip() for item in value.split(',') if item.strip()]


def split_table_name(table: str) -> Tuple[str, str]:
    """
    Split "schema.table" into its parts, plain names belong to the default schema
    :param table: table name as declared by the user
    :return: (schema, table)
    """
    if "." in table:
        schema, name = table.split(".", 1)
        return schema, name
    return DEFAULT_SCHEMA, table


def quote_ident(name: str) -> str:
    return '"%s"' % name.replace('"', '""')


def quote_table_name(table: str) -> str:
    schema, name = split_table_name(table)
    return f"{quote_ident(schema)}.{quote_ident(name)}"


def quote_literal(value: Optional[str]) -> str:
    """
    Render a value as a single-quoted SQL literal, same rules as PostgreSQL quote_nullable()
    """
    if value is None:
        return "NULL"

    value = str(value)
    literal = "'%s'" % value.replace("'", "''")
    if "\\" in value:
        literal = "E" + literal.replace("\\", "\\\\")
    return literal


def to_pg_text(value: Any) -> Optional[str]:
    """
    Text representation PostgreSQL accepts as input for the column type
    """
    if value is None:
        return None
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (bytes, bytearray, memoryview)):
        return "\\x" + bytes(value).hex()
    return str(value)


def render_query(query: str, args: Tuple) -> str:
    """
    Inline positional arguments into the query text, used for logs and dry runs
    """
    def replace(match):
        index = int(match.group(1)) - 1
        return quote_literal(to_pg_text(args[index]))

    return re.sub(r"\$(\d+)(?![0-9])", replace, query)


def load_describe_callback(tables_file: Union[str, Path]) -> Callable:
    """
    Load the table description callback from a Python file
    :param tables_file: path to a module defining ``describe(anonymizer)``
    :return: the ``describe`` callable
    """
    path = Path(tables_file)
    if not path.is_file():
        raise ConfigurationError(f"Tables file {path} does not exist")

    module_spec = importlib.util.spec_from_file_location(f"pg_mask_tables_{path.stem}", path.absolute())
    module = importlib.util.module_from_spec(module_spec)
    module_spec.loader.exec_module(module)

    describe = getattr(module, "describe", None)
    if not callable(describe):
        raise ConfigurationError(f"Tables file {path} must define a describe(anonymizer) function")
    return describe
