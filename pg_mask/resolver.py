from typing import Any, Dict, Mapping, Optional

from pg_mask.blueprint import ColumnRule, DerivedFromRow, Generated, Literal
from pg_mask.common.constants import ROW_PLACEHOLDER
from pg_mask.common.exceptions import GeneratorRequiredError
from pg_mask.common.utils import quote_literal, to_pg_text


def replace_placeholders(value: Any, row_index: int) -> Any:
    if not isinstance(value, str):
        return value

    return value.replace(ROW_PLACEHOLDER, str(row_index))


class ValueResolver:
    """
    Computes the replacement value of a column rule for one row.

    Values derived from the row are merged into a working copy of the row, so rules
    declared later see the already anonymized values. The working copy is rebuilt whenever
    a different row is passed in, ``new_row()`` forces a fresh copy of the same row.
    """

    def __init__(self, generator: Any = None):
        self.generator = generator
        self._working_row: Optional[Dict[str, Any]] = None
        self._source_row: Optional[Mapping[str, Any]] = None

    def new_row(self, row: Mapping[str, Any]):
        self._source_row = row
        self._working_row = dict(row)

    def resolve_raw(self, rule: ColumnRule, row: Mapping[str, Any], row_index: int) -> Any:
        if self._working_row is None or row is not self._source_row:
            self.new_row(row)

        replacement = rule.replacement

        if isinstance(replacement, DerivedFromRow):
            value = replacement.func(self._working_row, self.generator)
            self._working_row[rule.name] = value
        elif isinstance(replacement, Generated):
            if self.generator is None:
                raise GeneratorRequiredError(
                    f"Column {rule.name} is replaced by a generator, but no generator is configured"
                )
            value = replacement.func(self.generator)
        elif isinstance(replacement, Literal):
            value = replacement.value
        else:
            return row.get(rule.name)

        return replace_placeholders(value, row_index)

    def resolve_value(self, rule: ColumnRule, row: Mapping[str, Any], row_index: int) -> Optional[str]:
        """
        Replacement value in PostgreSQL text form, None stands for SQL NULL
        """
        return to_pg_text(self.resolve_raw(rule, row, row_index))

    def resolve(self, rule: ColumnRule, row: Mapping[str, Any], row_index: int) -> str:
        """
        Replacement value escaped as an SQL literal
        """
        return quote_literal(self.resolve_value(rule, row, row_index))
