import time
from typing import Any, List

from asyncpg import Connection, Pool

from pg_mask.blueprint import Blueprint, BlueprintRegistry
from pg_mask.common.db_utils import create_connection, create_pool, get_table_info
from pg_mask.common.dto import TableInfo, TableReport
from pg_mask.common.exceptions import SchemaMismatchError
from pg_mask.context import Context
from pg_mask.planner import MutationPlanner
from pg_mask.resolver import ValueResolver
from pg_mask.scheduler import WaveScheduler
from pg_mask.synchronizer import ConsistencySynchronizer


def check_columns_exist(blueprint: Blueprint, table_info: TableInfo):
    known = set(table_info.column_names)
    missing = [name for name in blueprint.primary_key + blueprint.column_names if name not in known]
    if missing:
        raise SchemaMismatchError(f"Table {blueprint.table} has no column(s): {', '.join(missing)}")


class AnonymizeMode:
    """Replaces column values in place, table after table."""

    context: Context
    registry: BlueprintRegistry

    def __init__(self, context: Context, registry: BlueprintRegistry, generator: Any = None):
        self.context = context
        self.registry = registry
        self.generator = generator

    async def _process_table(self, reader: Connection, pool: Pool, blueprint: Blueprint) -> TableReport:
        self.context.logger.info(f"-------------> Started table {blueprint.table}")
        report = TableReport(table=blueprint.table)
        start_t = time.time()

        if not blueprint.columns:
            self.context.logger.info(f"<------------- Skipped table {blueprint.table}: no column rules")
            return report

        table_info = await get_table_info(reader, blueprint.table)
        check_columns_exist(blueprint, table_info)

        planner = MutationPlanner(ValueResolver(self.generator), {blueprint.table: table_info})
        select = planner.plan_select(blueprint)
        self.context.logger.debug(str(select))

        def plan(row, row_index):
            return planner.plan_update(
                blueprint,
                planner.primary_key_values(blueprint, row),
                blueprint.columns,
                row_index,
                row,
            )

        synchronizer = ConsistencySynchronizer(pool, dry_run=self.context.options.dry_run)
        async with synchronizer.installed(blueprint) as triggers:
            report.triggers = [trigger.name for trigger in triggers]
            async with WaveScheduler(
                    pool,
                    max_in_flight=self.context.options.max_in_flight,
                    dry_run=self.context.options.dry_run,
            ) as scheduler:
                # the read transaction must end before the triggers are dropped
                async with reader.transaction(readonly=True):
                    report.rows = await scheduler.run(reader.cursor(select.query, *select.args), plan)

        report.elapsed = round(time.time() - start_t, 2)
        self.context.logger.info(
            f"<------------- Finished table {blueprint.table}: {report.rows} row(s), elapsed: {report.elapsed} sec"
        )
        return report

    async def run(self) -> List[TableReport]:
        self.context.logger.info("-------------> Started anonymize")
        pool = await create_pool(
            connection_params=self.context.connection_params,
            server_settings=self.context.server_settings,
            max_size=self.context.options.db_connections,
        )
        reader = await create_connection(self.context.connection_params, server_settings=self.context.server_settings)

        try:
            reports = []
            for blueprint in self.registry:
                reports.append(await self._process_table(reader, pool, blueprint))
        finally:
            await reader.close()
            await pool.close()

        self.context.logger.info("<------------- Finished anonymize")
        return reports
