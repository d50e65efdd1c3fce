import asyncio
import unittest

from pg_mask.common.exceptions import DatabaseOperationError
from pg_mask.planner import Statement
from pg_mask.scheduler import WaveScheduler


class FakePool:
    """Records executed statements and the highest number of concurrent calls"""

    def __init__(self, fail_on=None, delay=0.001):
        self.fail_on = fail_on
        self.delay = delay
        self.executed = []
        self.running = 0
        self.max_running = 0

    async def execute(self, query, *args):
        self.running += 1
        self.max_running = max(self.max_running, self.running)
        try:
            await asyncio.sleep(self.delay)
            if self.fail_on is not None and self.fail_on in query:
                raise RuntimeError(f"failed: {query}")
            self.executed.append((query, args))
        finally:
            self.running -= 1


async def rows_of(count):
    for i in range(count):
        yield {"id": i}


def plan(row, row_index):
    return Statement(f"UPDATE t SET v = $1 WHERE id = {row['id']}", (f"v{row_index}",))


class WaveSchedulerTest(unittest.IsolatedAsyncioTestCase):

    async def test_waves_are_bounded(self):
        pool = FakePool()
        scheduler = WaveScheduler(pool, max_in_flight=3)

        processed = await scheduler.run(rows_of(10), plan)

        self.assertEqual(processed, 10)
        self.assertEqual(len(pool.executed), 10)
        self.assertEqual(pool.max_running, 3)
        self.assertEqual(scheduler.executed, 10)
        self.assertEqual(scheduler.waves, 4)
        self.assertEqual(scheduler.in_flight, 0)

    async def test_wave_of_one(self):
        pool = FakePool()
        scheduler = WaveScheduler(pool, max_in_flight=1)

        await scheduler.run(rows_of(5), plan)

        self.assertEqual(pool.max_running, 1)
        self.assertEqual([args for _, args in pool.executed], [("v0",), ("v1",), ("v2",), ("v3",), ("v4",)])

    async def test_empty_source(self):
        pool = FakePool()
        scheduler = WaveScheduler(pool, max_in_flight=4)

        self.assertEqual(await scheduler.run(rows_of(0), plan), 0)
        self.assertEqual(scheduler.waves, 0)

    async def test_failure_propagates(self):
        pool = FakePool(fail_on="id = 4")
        scheduler = WaveScheduler(pool, max_in_flight=3)

        with self.assertRaises(DatabaseOperationError) as ctx:
            await scheduler.run(rows_of(10), plan)

        self.assertIn("id = 4", ctx.exception.statement)
        self.assertIn("'v4'", ctx.exception.statement)
        # the wave holding the failure completes, nothing after it is admitted
        self.assertEqual(len(pool.executed), 5)

    async def test_context_manager_drains(self):
        pool = FakePool()
        async with WaveScheduler(pool, max_in_flight=10) as scheduler:
            await scheduler.submit(Statement("SELECT 1"))
            await scheduler.submit(Statement("SELECT 2"))
            self.assertEqual(scheduler.in_flight, 2)

        self.assertEqual(len(pool.executed), 2)

    async def test_context_manager_settles_on_error(self):
        pool = FakePool()
        with self.assertRaises(KeyError):
            async with WaveScheduler(pool, max_in_flight=10) as scheduler:
                await scheduler.submit(Statement("SELECT 1"))
                raise KeyError("boom")

        self.assertEqual(len(pool.executed), 1)
        self.assertEqual(scheduler.in_flight, 0)

    async def test_dry_run(self):
        pool = FakePool()
        scheduler = WaveScheduler(pool, max_in_flight=2, dry_run=True)

        self.assertEqual(await scheduler.run(rows_of(3), plan), 3)
        self.assertEqual(pool.executed, [])

    def test_max_in_flight_must_be_positive(self):
        with self.assertRaises(ValueError):
            WaveScheduler(FakePool(), max_in_flight=0)


if __name__ == "__main__":
    unittest.main()
