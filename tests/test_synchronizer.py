import unittest

from pg_mask.blueprint import Blueprint
from pg_mask.common.enums import TriggerState
from pg_mask.common.exceptions import DatabaseOperationError
from pg_mask.synchronizer import ConsistencySynchronizer, SyncTrigger


class RecordingPool:

    def __init__(self, fail_on=None):
        self.fail_on = fail_on
        self.queries = []

    async def execute(self, query, *args):
        if self.fail_on is not None and self.fail_on in query:
            raise RuntimeError("permission denied")
        self.queries.append(query)


def synced_blueprint():
    return Blueprint("users", lambda table: (
        table.column("email").replace_with("e_#row#").sync_with("orders", "customer_email"),
        table.column("login").replace_with("l_#row#").sync_with("shop.audit", "login"),
    )).build()


class SyncTriggerTest(unittest.TestCase):

    def test_install_query(self):
        trigger = SyncTrigger("users", "email", [("orders", "customer_email"), ("invoices", "email")])
        query = trigger.install_query()

        self.assertTrue(trigger.name.startswith("pg_mask_sync_"))
        self.assertIn(f'CREATE OR REPLACE FUNCTION "public"."{trigger.name}"() RETURNS trigger', query)
        self.assertIn('IF NEW."email" IS DISTINCT FROM OLD."email" THEN', query)
        self.assertIn(
            'UPDATE "public"."orders" SET "customer_email" = NEW."email" WHERE "customer_email" = OLD."email";',
            query,
        )
        self.assertIn('UPDATE "public"."invoices" SET "email" = NEW."email" WHERE "email" = OLD."email";', query)
        self.assertIn('AFTER UPDATE OF "email" ON "public"."users"', query)
        self.assertEqual(trigger.state, TriggerState.ABSENT)

    def test_names_are_stable_and_distinct(self):
        self.assertEqual(SyncTrigger("users", "email", []).name, SyncTrigger("users", "email", []).name)
        self.assertNotEqual(SyncTrigger("users", "email", []).name, SyncTrigger("users", "login", []).name)

    def test_remove_query(self):
        trigger = SyncTrigger("shop.users", "email", [("shop.orders", "email")])
        query = trigger.remove_query()
        self.assertIn(f'DROP TRIGGER IF EXISTS "{trigger.name}" ON "shop"."users";', query)
        self.assertIn(f'DROP FUNCTION IF EXISTS "shop"."{trigger.name}"();', query)


class ConsistencySynchronizerTest(unittest.IsolatedAsyncioTestCase):

    async def test_triggers_installed_and_removed(self):
        pool = RecordingPool()
        blueprint = synced_blueprint()
        synchronizer = ConsistencySynchronizer(pool)

        async with synchronizer.installed(blueprint) as triggers:
            self.assertEqual(len(triggers), 2)
            self.assertEqual(blueprint.active_triggers, [t.name for t in triggers])
            self.assertTrue(all(t.state == TriggerState.INSTALLED for t in triggers))

        self.assertEqual(blueprint.active_triggers, [])
        self.assertTrue(all(t.state == TriggerState.REMOVED for t in triggers))
        self.assertEqual(len(pool.queries), 4)
        # removal goes in reverse order
        self.assertIn(triggers[1].name, pool.queries[2].split("\n")[0])

    async def test_triggers_removed_on_error(self):
        pool = RecordingPool()
        blueprint = synced_blueprint()
        synchronizer = ConsistencySynchronizer(pool)

        with self.assertRaises(DatabaseOperationError):
            async with synchronizer.installed(blueprint) as triggers:
                raise DatabaseOperationError("update failed")

        self.assertEqual(blueprint.active_triggers, [])
        self.assertTrue(all(t.state == TriggerState.REMOVED for t in triggers))
        self.assertEqual(sum("DROP FUNCTION" in q for q in pool.queries), 2)

    async def test_failed_install_removes_installed_ones(self):
        blueprint = synced_blueprint()
        second = SyncTrigger("users", "login", []).name
        pool = RecordingPool(fail_on=f'FUNCTION "public"."{second}"() RETURNS')
        synchronizer = ConsistencySynchronizer(pool)

        with self.assertRaises(DatabaseOperationError):
            async with synchronizer.installed(blueprint):
                self.fail("body must not run")

        self.assertEqual(blueprint.active_triggers, [])
        self.assertEqual(len(pool.queries), 2)
        self.assertIn("DROP FUNCTION", pool.queries[1])

    async def test_failed_removal_is_reported(self):
        blueprint = synced_blueprint()
        pool = RecordingPool()
        synchronizer = ConsistencySynchronizer(pool)

        with self.assertRaises(DatabaseOperationError):
            async with synchronizer.installed(blueprint):
                pool.fail_on = "DROP TRIGGER"

        self.assertEqual(len(blueprint.active_triggers), 2)

    async def test_no_sync_rules(self):
        pool = RecordingPool()
        blueprint = Blueprint("users", lambda table: table.column("email").replace_with("x")).build()

        async with ConsistencySynchronizer(pool).installed(blueprint) as triggers:
            self.assertEqual(triggers, [])

        self.assertEqual(pool.queries, [])

    async def test_dry_run(self):
        pool = RecordingPool()
        blueprint = synced_blueprint()

        async with ConsistencySynchronizer(pool, dry_run=True).installed(blueprint):
            self.assertEqual(len(blueprint.active_triggers), 2)

        self.assertEqual(pool.queries, [])
        self.assertEqual(blueprint.active_triggers, [])


if __name__ == "__main__":
    unittest.main()
