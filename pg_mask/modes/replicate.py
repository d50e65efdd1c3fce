import time
from typing import Any, List

from asyncpg import Connection, Pool

from pg_mask.blueprint import Blueprint, BlueprintRegistry
from pg_mask.common.db_queries import get_sequence_max_value_init_query
from pg_mask.common.db_utils import (
    create_connection,
    create_pool,
    get_table_info,
    get_foreign_keys,
    normalize_table_name,
)
from pg_mask.common.dto import TableInfo, TableReport
from pg_mask.common.exceptions import DatabaseOperationError
from pg_mask.common.utils import quote_ident, quote_table_name, split_table_name
from pg_mask.context import Context
from pg_mask.modes.anonymize import check_columns_exist
from pg_mask.planner import MutationPlanner
from pg_mask.replication import get_create_table_statement, strip_constraints, split_foreign_keys
from pg_mask.resolver import ValueResolver
from pg_mask.scheduler import WaveScheduler


class ReplicateMode:
    """
    Recreates the selected tables in the target database and fills them with anonymized rows.

    Foreign keys owned by the selected tables are left out while tables are loaded and
    re-added once every table is in place. A failure in the middle leaves the target with
    stripped or partially loaded tables, nothing is rolled back.
    """

    context: Context
    registry: BlueprintRegistry

    def __init__(self, context: Context, registry: BlueprintRegistry, generator: Any = None):
        self.context = context
        self.registry = registry
        self.generator = generator
        self.selected_tables = [normalize_table_name(table) for table in registry.tables]
        self.tables_info = {}

    async def _execute_on_target(self, target: Pool, query: str):
        if self.context.options.dry_run:
            self.context.logger.info(f"[dry-run] {query}")
            return

        self.context.logger.debug(query)
        try:
            await target.execute(query)
        except Exception as exc:
            raise DatabaseOperationError(f"Can't execute query: {exc}", statement=query) from exc

    async def _recreate_table(self, source: Connection, target: Pool, table_info: TableInfo):
        table = table_info.table
        create_statement, indexes = await get_create_table_statement(source, table, table_info)
        foreign_keys = await get_foreign_keys(source, [table])

        create_statement = strip_constraints(create_statement, [foreign_key.clause for foreign_key in foreign_keys])
        for foreign_key in foreign_keys:
            self.context.logger.info(f"Foreign key left out until all tables are loaded: {foreign_key}")

        # DROP ... CASCADE takes these with it and nothing restores them
        for foreign_key in await get_foreign_keys(target, [table], referenced=True):
            if foreign_key.table not in self.selected_tables:
                self.context.logger.warning(
                    f"Foreign key of a table outside of the selection is dropped with {table}: {foreign_key}"
                )

        schema, _ = split_table_name(table)
        await self._execute_on_target(target, f"CREATE SCHEMA IF NOT EXISTS {quote_ident(schema)}")
        await self._execute_on_target(target, f"DROP TABLE IF EXISTS {quote_table_name(table)} CASCADE")
        await self._execute_on_target(target, create_statement)
        for index in indexes:
            await self._execute_on_target(target, index)

    async def _replicate_table(self, source: Connection, target: Pool, blueprint: Blueprint) -> TableReport:
        self.context.logger.info(f"-------------> Started table {blueprint.table}")
        report = TableReport(table=blueprint.table)
        start_t = time.time()

        if blueprint.sync_rules:
            self.context.logger.warning(
                f"Sync rules of table {blueprint.table} are ignored in replicate mode, rows are inserted, not updated"
            )

        table_info = await get_table_info(source, blueprint.table)
        check_columns_exist(blueprint, table_info)
        self.tables_info[blueprint.table] = table_info

        await self._recreate_table(source, target, table_info)

        planner = MutationPlanner(ValueResolver(self.generator), {blueprint.table: table_info})
        select = planner.plan_select(blueprint, full_row_needed=True, with_row_filters=True)
        self.context.logger.debug(str(select))

        def plan(row, row_index):
            return planner.plan_insert(blueprint, blueprint.columns, row_index, row)

        async with WaveScheduler(
                target,
                max_in_flight=self.context.options.max_in_flight,
                dry_run=self.context.options.dry_run,
        ) as scheduler:
            async with source.transaction(readonly=True):
                report.rows = await scheduler.run(source.cursor(select.query, *select.args), plan)

        report.elapsed = round(time.time() - start_t, 2)
        self.context.logger.info(
            f"<------------- Finished table {blueprint.table}: {report.rows} row(s), elapsed: {report.elapsed} sec"
        )
        return report

    async def _restore_foreign_keys(self, source: Connection, target: Pool):
        self.context.logger.info("-------------> Started restore foreign keys")
        foreign_keys = await get_foreign_keys(source, self.selected_tables)
        restorable, dropped = split_foreign_keys(foreign_keys, self.selected_tables)

        for foreign_key in dropped:
            self.context.logger.warning(
                f"Foreign key references a table outside of the selection and is not restored: {foreign_key}"
            )

        for foreign_key in restorable:
            self.context.logger.info(f"Restoring foreign key {foreign_key}")
            await self._execute_on_target(target, foreign_key.add_query())

        self.context.logger.info("<------------- Finished restore foreign keys")

    async def _init_sequences(self, target: Pool):
        for table, table_info in self.tables_info.items():
            for column in table_info.columns:
                if not column.serial_sequence:
                    continue
                await self._execute_on_target(
                    target,
                    get_sequence_max_value_init_query(quote_table_name(table), column.name),
                )

    async def run(self) -> List[TableReport]:
        self.context.logger.info("-------------> Started replicate")
        source = await create_connection(self.context.connection_params, server_settings=self.context.server_settings)
        target = await create_pool(
            connection_params=self.context.target_connection_params,
            server_settings=self.context.target_server_settings,
            max_size=self.context.options.db_connections,
        )

        try:
            reports = []
            for blueprint in self.registry:
                reports.append(await self._replicate_table(source, target, blueprint))

            await self._restore_foreign_keys(source, target)
            await self._init_sequences(target)
        except Exception:
            self.context.logger.error(
                "Replication aborted: the target database may hold tables without their foreign keys "
                "or with partially loaded rows"
            )
            raise
        finally:
            await source.close()
            await target.close()

        self.context.logger.info("<------------- Finished replicate")
        return reports
