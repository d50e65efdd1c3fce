import json
import time
from dataclasses import dataclass, asdict, field
from enum import Enum
from typing import Optional, List

from pg_mask.common.constants import SECRET_RUN_OPTIONS
from pg_mask.common.enums import ResultCode, AnonMode, VerboseOptions


@dataclass
class RunOptions:
    pg_mask_version: str
    internal_operation_id: str
    run_dir: str
    debug: bool
    config: Optional[str]
    mode: AnonMode
    verbose: VerboseOptions
    db_host: str
    db_port: int
    db_name: str
    db_user: str
    db_user_password: Optional[str]
    db_passfile: Optional[str]
    tables_file: Optional[str]
    db_connections: int
    max_in_flight: int
    default_locale: str
    default_primary: List[str]
    dry_run: bool
    version: bool
    target_db_host: Optional[str] = None
    target_db_port: Optional[int] = None
    target_db_name: Optional[str] = None
    target_db_user: Optional[str] = None
    target_db_user_password: Optional[str] = None
    target_db_passfile: Optional[str] = None
    keep_fk_checks: bool = False

    def to_dict(self):
        return {
            k: v.value if isinstance(v, Enum) else v
            for k, v in asdict(self).items()
            if k not in SECRET_RUN_OPTIONS
        }

    def to_json(self, indent: int = 2) -> str:
        return json.dumps(self.to_dict(), indent=indent, ensure_ascii=False)


class ConnectionParams:
    host: str
    database: str
    port: int
    user: str

    password: Optional[str] = None
    passfile: Optional[str] = None

    def __init__(self, host: str, port: int, database: str, user: str,
                 password: Optional[str] = None, passfile: Optional[str] = None):
        self.host = host
        self.port = port
        self.database = database
        self.user = user
        self.password = password
        self.passfile = passfile

    def as_dict(self) -> dict:
        return {k: v for k, v in self.__dict__.items() if v is not None}

    def __repr__(self):
        return f"ConnectionParams(host={self.host!r}, port={self.port}, database={self.database!r}, user={self.user!r})"


@dataclass
class TableReport:
    table: str
    rows: int = 0
    elapsed: Optional[float] = None
    triggers: List[str] = field(default_factory=list)


class PgMaskResult:
    """Outcome of one run: result code, timing and the reports of processed tables"""

    def __init__(self):
        self.run_options: Optional[RunOptions] = None
        self.result_code = ResultCode.UNKNOWN
        self.reports: List[TableReport] = []
        self.start_time: Optional[float] = None
        self.end_time: Optional[float] = None
        self._exception: Optional[Exception] = None
        self._traceback: Optional[str] = None

    def start(self, run_options: RunOptions):
        self.run_options = run_options
        self.start_time = time.time()

    def fail(self, exception: Exception = None):
        from pg_mask.common.utils import exception_to_str

        self.end_time = time.time()
        self.result_code = ResultCode.FAIL
        self._exception = exception
        if exception is not None:
            self._traceback = exception_to_str(exception)

    def complete(self, reports: List[TableReport]):
        self.end_time = time.time()
        self.result_code = ResultCode.DONE
        self.reports = list(reports)

    @property
    def total_rows(self) -> int:
        return sum(report.rows for report in self.reports)

    @property
    def elapsed(self) -> Optional[float]:
        if self.start_time is None or self.end_time is None:
            return None
        return round(self.end_time - self.start_time, 2)

    @property
    def exception(self) -> Optional[Exception]:
        return self._exception

    @property
    def error_message(self) -> Optional[str]:
        return self._traceback

    def to_dict(self):
        return {
            "result_code": self.result_code.value,
            "elapsed": self.elapsed,
            "tables": [asdict(report) for report in self.reports],
        }


@dataclass
class ColumnInfo:
    name: str
    type: str
    not_null: bool = False
    default: Optional[str] = None
    identity: str = ""  # pg_attribute.attidentity: "a" always, "d" by default
    generated: str = ""  # pg_attribute.attgenerated: "s" stored
    serial_sequence: Optional[str] = None


@dataclass
class TableInfo:
    table: str
    columns: List[ColumnInfo] = field(default_factory=list)

    def get_column(self, name: str) -> Optional[ColumnInfo]:
        for column in self.columns:
            if column.name == name:
                return column
        return None

    def column_type(self, name: str) -> Optional[str]:
        column = self.get_column(name)
        return column.type if column else None

    def is_generated(self, name: str) -> bool:
        column = self.get_column(name)
        return bool(column and column.generated)

    @property
    def has_identity(self) -> bool:
        return any(column.identity for column in self.columns)

    @property
    def column_names(self) -> List[str]:
        return [column.name for column in self.columns]


@dataclass
class ForeignKeyInfo:
    name: str
    table_schema: str
    table_name: str
    columns: List[str]
    referenced_schema: str
    referenced_table: str
    referenced_columns: List[str]
    update_rule: str
    delete_rule: str
    definition: str

    @property
    def table(self) -> str:
        return f"{self.table_schema}.{self.table_name}"

    @property
    def referenced(self) -> str:
        return f"{self.referenced_schema}.{self.referenced_table}"

    @property
    def is_self_reference(self) -> bool:
        return self.table == self.referenced

    @property
    def clause(self) -> str:
        """Constraint clause as written in the CREATE TABLE statement"""
        from pg_mask.common.utils import quote_ident

        return f"CONSTRAINT {quote_ident(self.name)} {self.definition}"

    def add_query(self) -> str:
        from pg_mask.common.utils import quote_ident

        return (
            f"ALTER TABLE {quote_ident(self.table_schema)}.{quote_ident(self.table_name)} "
            f"ADD {self.clause}"
        )

    def __str__(self):
        return (
            f"{self.name}: {self.table}({', '.join(self.columns)}) -> "
            f"{self.referenced}({', '.join(self.referenced_columns)}) "
            f"ON UPDATE {self.update_rule} ON DELETE {self.delete_rule}"
        )
