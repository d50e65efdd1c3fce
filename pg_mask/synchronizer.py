import hashlib
import logging
from contextlib import asynccontextmanager
from typing import List, Optional, Tuple

from asyncpg import Pool

from pg_mask.blueprint import Blueprint
from pg_mask.common.constants import SYNC_TRIGGER_PREFIX
from pg_mask.common.enums import TriggerState
from pg_mask.common.exceptions import DatabaseOperationError
from pg_mask.common.utils import quote_ident, quote_table_name, split_table_name
from pg_mask.logger import get_logger


class SyncTrigger:
    """
    Row trigger copying the new value of ``table.column`` into every target column still holding the old value
    """

    def __init__(self, table: str, column: str, targets: List[Tuple[str, str]]):
        self.table = table
        self.column = column
        self.targets = list(targets)
        self.state = TriggerState.ABSENT

        digest = hashlib.md5(f"{table}.{column}".encode()).hexdigest()[:16]
        self.name = f"{SYNC_TRIGGER_PREFIX}{digest}"

    @property
    def function_name(self) -> str:
        schema, _ = split_table_name(self.table)
        return f"{quote_ident(schema)}.{quote_ident(self.name)}"

    def install_query(self) -> str:
        column = quote_ident(self.column)
        updates = "\n".join(
            f"        UPDATE {quote_table_name(target_table)} SET {quote_ident(target_column)} = NEW.{column} "
            f"WHERE {quote_ident(target_column)} = OLD.{column};"
            for target_table, target_column in self.targets
        )

        return f"""
CREATE OR REPLACE FUNCTION {self.function_name}() RETURNS trigger AS $pg_mask$
BEGIN
    IF NEW.{column} IS DISTINCT FROM OLD.{column} THEN
{updates}
    END IF;
    RETURN NEW;
END;
$pg_mask$ LANGUAGE plpgsql;

DROP TRIGGER IF EXISTS {quote_ident(self.name)} ON {quote_table_name(self.table)};
CREATE TRIGGER {quote_ident(self.name)}
    AFTER UPDATE OF {column} ON {quote_table_name(self.table)}
    FOR EACH ROW EXECUTE PROCEDURE {self.function_name}();
"""

    def remove_query(self) -> str:
        return (
            f"DROP TRIGGER IF EXISTS {quote_ident(self.name)} ON {quote_table_name(self.table)};\n"
            f"DROP FUNCTION IF EXISTS {self.function_name}();"
        )

    def __repr__(self):
        return f"SyncTrigger({self.name}: {self.table}.{self.column} -> {self.targets}, {self.state.value})"


class ConsistencySynchronizer:
    """
    Installs the sync triggers of a table for the time its rows are processed.

    Propagation itself happens inside the database on every UPDATE of the synchronized
    column, the synchronizer only manages installation and removal.
    """

    def __init__(self, pool: Pool, dry_run: bool = False, logger: logging.Logger = None):
        self.pool = pool
        self.dry_run = dry_run
        self.logger = logger or get_logger()

    @staticmethod
    def triggers_for(blueprint: Blueprint) -> List[SyncTrigger]:
        return [
            SyncTrigger(blueprint.table, column, targets)
            for column, targets in blueprint.sync_rules.items()
            if targets
        ]

    @asynccontextmanager
    async def installed(self, blueprint: Blueprint):
        triggers = self.triggers_for(blueprint)
        try:
            for trigger in triggers:
                await self._install(trigger)
                blueprint.active_triggers.append(trigger.name)
            yield triggers
        except BaseException:
            await self._remove_all(blueprint, triggers, raise_errors=False)
            raise
        else:
            await self._remove_all(blueprint, triggers)

    async def _install(self, trigger: SyncTrigger):
        self.logger.info(
            f"Installing sync trigger {trigger.name} on {trigger.table}.{trigger.column} -> "
            + ", ".join(f"{table}.{column}" for table, column in trigger.targets)
        )
        await self._execute(trigger.install_query())
        trigger.state = TriggerState.INSTALLED

    async def _remove_all(self, blueprint: Blueprint, triggers: List[SyncTrigger], raise_errors: bool = True):
        error: Optional[Exception] = None

        for trigger in reversed(triggers):
            if trigger.state != TriggerState.INSTALLED:
                continue
            try:
                await self._execute(trigger.remove_query())
                trigger.state = TriggerState.REMOVED
                blueprint.active_triggers.remove(trigger.name)
                self.logger.info(f"Removed sync trigger {trigger.name} from {trigger.table}")
            except DatabaseOperationError as exc:
                self.logger.error(f"Can't remove sync trigger {trigger.name} from {trigger.table}: {exc}")
                error = error or exc

        if error is not None and raise_errors:
            raise error

    async def _execute(self, query: str):
        if self.dry_run:
            self.logger.info(f"[dry-run] {query}")
            return

        self.logger.debug(query)
        try:
            await self.pool.execute(query)
        except Exception as exc:
            raise DatabaseOperationError(f"Can't execute query: {exc}", statement=query) from exc
