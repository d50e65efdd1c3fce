from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union

from pg_mask.common.constants import DEFAULT_PRIMARY_KEY
from pg_mask.common.exceptions import ConfigurationError


@dataclass(frozen=True)
class Literal:
    value: Any


@dataclass(frozen=True)
class Generated:
    func: Callable[[Any], Any]


@dataclass(frozen=True)
class DerivedFromRow:
    func: Callable[[Mapping[str, Any], Any], Any]


Replacement = Union[Literal, Generated, DerivedFromRow]


@dataclass
class ColumnRule:
    name: str
    where: Optional[str] = None
    replacement: Optional[Replacement] = None

    @property
    def is_derived(self) -> bool:
        return isinstance(self.replacement, DerivedFromRow)


SyncTarget = Tuple[str, str]


class Blueprint:
    """
    Anonymization rules of one table.

    Tables are described either through the fluent API, inside a callback given to
    ``Anonymizer.table()``::

        table.primary("id")
        table.column("email").where("id != 1").replace_with(lambda generator: generator.email())
        table.column("login").replace_with("user_#row#")

    or with ``declare_table()``. A blueprint is built exactly once and is read-only
    afterwards, except ``active_triggers`` which tracks sync triggers during a run.
    """

    def __init__(self, table: str, callback: Optional[Callable[["Blueprint"], None]] = None):
        self.table = table
        self.primary_key: Optional[List[str]] = None
        self.columns: List[ColumnRule] = []
        self.global_filters: List[str] = []
        self.sync_rules: Dict[str, List[SyncTarget]] = {}
        self.active_triggers: List[str] = []

        self._callback = callback
        self._current_column: Optional[ColumnRule] = None
        self._built = False

    def primary(self, key: Union[str, Sequence[str]]) -> "Blueprint":
        self.primary_key = [key] if isinstance(key, str) else list(key)
        return self

    def column(self, name: str) -> "Blueprint":
        self._current_column = ColumnRule(name=name)
        return self

    def where(self, raw_sql: str) -> "Blueprint":
        self._require_current_column("where")
        self._current_column.where = raw_sql
        return self

    def global_where(self, raw_sql: str) -> "Blueprint":
        self.global_filters.append(raw_sql)
        return self

    def replace_with(self, value: Any) -> "Blueprint":
        """
        Replace the current column with a constant or with the result of ``value(generator)``.
        String constants may contain the ``#row#`` placeholder
        """
        replacement = Generated(value) if callable(value) else Literal(value)
        self._set_replacement(replacement)
        return self

    def replace_by_fields(self, func: Callable[[Mapping[str, Any], Any], Any]) -> "Blueprint":
        """
        Replace the current column with ``func(row, generator)``, the row holds every column of the table
        """
        if not callable(func):
            raise ConfigurationError(f"{self.table}.{self._current_name()}: replace_by_fields() expects a callable")
        self._set_replacement(DerivedFromRow(func))
        return self

    def sync_with(self, target_table: str, target_column: str) -> "Blueprint":
        """
        Propagate new values of the current column to target_table.target_column rows holding the old value
        """
        self._require_current_column("sync_with")
        self.add_sync_rule(self._current_column.name, target_table, target_column)
        return self

    def add_sync_rule(self, column: str, target_table: str, target_column: str):
        if not target_table or not target_column:
            raise ConfigurationError(
                f"{self.table}.{column}: sync target must name a table and a column, got ({target_table!r}, {target_column!r})"
            )
        self.sync_rules.setdefault(column, []).append((target_table, target_column))

    def add_column(self, rule: ColumnRule):
        if rule.replacement is None:
            return
        self.columns.append(rule)

    def build(self, default_primary: Optional[Sequence[str]] = None) -> "Blueprint":
        if self._built:
            raise ConfigurationError(f"Blueprint for table {self.table} has already been built")

        if self._callback is not None:
            self._callback(self)
        self._current_column = None

        if not self.primary_key:
            self.primary_key = list(default_primary or DEFAULT_PRIMARY_KEY)

        self._validate()
        self._built = True
        return self

    @property
    def built(self) -> bool:
        return self._built

    @property
    def column_names(self) -> List[str]:
        return [rule.name for rule in self.columns]

    @property
    def needs_full_row(self) -> bool:
        return any(rule.is_derived for rule in self.columns)

    @property
    def global_filter(self) -> Optional[str]:
        if not self.global_filters:
            return None
        if len(self.global_filters) == 1:
            return self.global_filters[0]
        return " AND ".join(f"({condition})" for condition in self.global_filters)

    def _set_replacement(self, replacement: Replacement):
        self._require_current_column("replacement")
        rule = self._current_column
        if rule.replacement is not None:
            raise ConfigurationError(
                f"{self.table}.{rule.name}: a column rule accepts only one replacement strategy"
            )
        rule.replacement = replacement
        self.columns.append(rule)

    def _require_current_column(self, action: str):
        if self._current_column is None:
            raise ConfigurationError(f"{self.table}: call column() before {action}")

    def _current_name(self) -> str:
        return self._current_column.name if self._current_column else "?"

    def _validate(self):
        seen = set()
        for rule in self.columns:
            if rule.name in seen:
                raise ConfigurationError(f"{self.table}.{rule.name}: column is declared more than once")
            seen.add(rule.name)

            if rule.name in self.primary_key:
                raise ConfigurationError(f"{self.table}.{rule.name}: primary key columns cannot be replaced")

    def __repr__(self):
        return f"Blueprint(table={self.table!r}, primary={self.primary_key!r}, columns={self.column_names!r})"


def declare_table(
        name: str,
        primary: Optional[Union[str, Sequence[str]]] = None,
        where: Optional[str] = None,
        columns: Iterable[ColumnRule] = (),
        sync: Optional[Mapping[str, Iterable[SyncTarget]]] = None,
        default_primary: Optional[Sequence[str]] = None,
) -> Blueprint:
    """
    Build a blueprint from plain declarations instead of a callback
    :param name: table name, optionally schema qualified
    :param primary: primary key column or columns, default primary key when omitted
    :param where: global filter restricting the processed rows
    :param columns: column rules in SET clause order, rules without replacement are ignored
    :param sync: mapping of column name to (target table, target column) pairs
    :param default_primary: primary key applied when none is given
    :return: built blueprint
    """
    blueprint = Blueprint(name)
    if primary:
        blueprint.primary(primary)
    if where:
        blueprint.global_where(where)
    for rule in columns:
        blueprint.add_column(rule)
    for column, targets in (sync or {}).items():
        for target_table, target_column in targets:
            blueprint.add_sync_rule(column, target_table, target_column)
    return blueprint.build(default_primary)


class BlueprintRegistry:
    """Blueprints of one run, in declaration order."""

    def __init__(self, default_primary: Optional[Sequence[str]] = None):
        self.default_primary = list(default_primary or DEFAULT_PRIMARY_KEY)
        self._blueprints: Dict[str, Blueprint] = {}

    def register(self, blueprint: Blueprint) -> Blueprint:
        if blueprint.table in self._blueprints:
            raise ConfigurationError(f"Table {blueprint.table} is described more than once")

        if not blueprint.built:
            blueprint.build(self.default_primary)
        self._blueprints[blueprint.table] = blueprint
        return blueprint

    def get(self, table: str) -> Optional[Blueprint]:
        return self._blueprints.get(table)

    @property
    def tables(self) -> List[str]:
        return list(self._blueprints)

    def __iter__(self):
        return iter(self._blueprints.values())

    def __len__(self):
        return len(self._blueprints)

    def __contains__(self, table: str):
        return table in self._blueprints
