import asyncio
import logging
from typing import Any, AsyncIterable, Callable, Set

from asyncpg import Pool

from pg_mask.common.exceptions import DatabaseOperationError
from pg_mask.logger import get_logger
from pg_mask.planner import Statement


class WaveScheduler:
    """
    Runs statements on a pool in waves of at most ``max_in_flight`` concurrent operations.

    A wave is fully drained before the next statement is admitted. The first failed
    statement of a wave fails the whole run, there are no retries.
    """

    def __init__(self, pool: Pool, max_in_flight: int, dry_run: bool = False, logger: logging.Logger = None):
        if max_in_flight < 1:
            raise ValueError("max_in_flight must be positive")

        self.pool = pool
        self.max_in_flight = max_in_flight
        self.dry_run = dry_run
        self.logger = logger or get_logger()
        self.executed = 0
        self.waves = 0
        self._in_flight: Set[asyncio.Future] = set()

    async def __aenter__(self) -> "WaveScheduler":
        return self

    async def __aexit__(self, exc_type, exc, tb):
        if exc_type is None:
            await self.drain()
        else:
            await self._settle()
        return False

    @property
    def in_flight(self) -> int:
        return len(self._in_flight)

    async def submit(self, statement: Statement):
        self._in_flight.add(asyncio.ensure_future(self._execute(statement)))
        if len(self._in_flight) >= self.max_in_flight:
            await self.drain()

    async def drain(self):
        if not self._in_flight:
            return

        wave, self._in_flight = self._in_flight, set()
        done, _ = await asyncio.wait(wave)
        self.waves += 1

        errors = [task.exception() for task in done if task.exception() is not None]
        self.executed += len(done) - len(errors)
        if errors:
            self.logger.error(f"{len(errors)} of {len(done)} statement(s) failed in wave {self.waves}")
            raise errors[0]

    async def run(self, rows: AsyncIterable, plan: Callable[[Any, int], Statement]) -> int:
        """
        Drive the row source to completion, one statement per row
        :param rows: async iterable of rows in fetch order
        :param plan: builds the statement of a row from the row and its zero-based fetch order
        :return: number of processed rows
        """
        row_index = 0
        async for row in rows:
            await self.submit(plan(row, row_index))
            row_index += 1

        await self.drain()
        return row_index

    async def _execute(self, statement: Statement):
        if self.dry_run:
            self.logger.info(f"[dry-run] {statement}")
            return

        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.debug(str(statement))

        try:
            await self.pool.execute(statement.query, *statement.args)
        except Exception as exc:
            raise DatabaseOperationError(f"Can't execute query: {exc}", statement=str(statement)) from exc

    async def _settle(self):
        """Let the statements already sent finish before the error goes up."""
        if not self._in_flight:
            return

        wave, self._in_flight = self._in_flight, set()
        await asyncio.wait(wave)
        for task in wave:
            if task.exception() is not None:
                self.logger.error(f"Statement failed while aborting: {task.exception()}")
