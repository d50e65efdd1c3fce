import copy
import os
import tempfile
import unittest
from dataclasses import replace

from pg_mask.app import PgMaskApp
from pg_mask.cli import build_run_options
from pg_mask.common.db_utils import create_connection
from pg_mask.common.enums import ResultCode
from pg_mask.context import Context


class TestParams:
    test_db_user = "mask_test_user"  # default value
    test_db_user_password = "mYy5RexGsZ"
    test_db_host = None
    test_db_port = "5432"
    test_source_db = "pg_mask_test_source_db"
    test_target_db = "pg_mask_test_target_db"

    def __init__(self):
        if os.environ.get("TEST_DB_USER") is not None:
            self.test_db_user = os.environ["TEST_DB_USER"]
        if os.environ.get("TEST_DB_USER_PASSWORD") is not None:
            self.test_db_user_password = os.environ["TEST_DB_USER_PASSWORD"]
        if os.environ.get("TEST_DB_HOST") is not None:
            self.test_db_host = os.environ["TEST_DB_HOST"]
        if os.environ.get("TEST_DB_PORT") is not None:
            self.test_db_port = os.environ["TEST_DB_PORT"]
        if os.environ.get("TEST_SOURCE_DB") is not None:
            self.test_source_db = os.environ["TEST_SOURCE_DB"]
        if os.environ.get("TEST_TARGET_DB") is not None:
            self.test_target_db = os.environ["TEST_TARGET_DB"]


params = TestParams()

INIT_ENV_SQL = """
DROP TABLE IF EXISTS public.orders, public.users, public.audit CASCADE;

CREATE TABLE public.users (
    id serial PRIMARY KEY,
    email text NOT NULL UNIQUE,
    first_name text,
    last_name text,
    full_name text,
    age integer
);

CREATE TABLE public.orders (
    id serial PRIMARY KEY,
    user_id integer REFERENCES public.users(id),
    customer_email text,
    note text
);

CREATE TABLE public.audit (
    id bigint GENERATED ALWAYS AS IDENTITY PRIMARY KEY,
    user_id integer,
    message text
);
CREATE INDEX audit_user_idx ON public.audit (user_id);

INSERT INTO public.users (email, first_name, last_name, full_name, age)
SELECT 'user' || i || '@corp.local', 'First' || i, 'Last' || i, 'First' || i || ' Last' || i, 20 + i
FROM generate_series(1, 50) i;

INSERT INTO public.orders (user_id, customer_email, note)
SELECT u.id, u.email, 'order of ' || u.email
FROM public.users u;

INSERT INTO public.audit (user_id, message)
SELECT id, 'login of user ' || id FROM public.users;
"""


class DBOperations:
    @staticmethod
    async def init_db(db_conn, db_name):
        await db_conn.execute(
            """
            SELECT pg_terminate_backend(pid)
            FROM pg_stat_activity
            WHERE pid <> pg_backend_pid()
                AND datname = '%s'
            """
            % db_name
        )
        await db_conn.execute("""DROP DATABASE IF EXISTS %s""" % db_name)
        await db_conn.execute("""CREATE DATABASE %s OWNER = %s""" % (db_name, params.test_db_user))


def describe_tables(anonymizer):
    anonymizer.table("users", lambda table: (
        table.column("email").where("id != 1").replace_with("user_#row#@example.com")
        .sync_with("orders", "customer_email"),
        table.column("first_name").replace_with(lambda generator: generator.first_name()),
        table.column("last_name").replace_with("Doe"),
        table.column("full_name").replace_by_fields(lambda row, generator: f"Person {row['id']}"),
        table.column("age").replace_with("42"),
    ))
    anonymizer.table("orders", lambda table: table.column("note").replace_with(None))
    anonymizer.table("audit", lambda table: table.column("message").replace_with("hidden"))


@unittest.skipIf(params.test_db_host is None, "TEST_DB_HOST is not set")
class PgMaskIntegrationTest(unittest.IsolatedAsyncioTestCase):

    def options(self, mode, *extra):
        run_dir = tempfile.mkdtemp(prefix="pg_mask_test_")
        options = build_run_options([
            mode,
            f"--db-host={params.test_db_host}",
            f"--db-port={params.test_db_port}",
            f"--db-name={params.test_source_db}",
            f"--db-user={params.test_db_user}",
            f"--db-user-password={params.test_db_user_password}",
            "--max-in-flight=8",
            "--db-connections=4",
            "--debug",
            *extra,
        ])
        return replace(options, run_dir=run_dir)

    async def asyncSetUp(self):
        ctx = Context(self.options("anonymize"))
        admin_params = copy.copy(ctx.connection_params)
        admin_params.database = "postgres"

        db_conn = await create_connection(admin_params)
        try:
            await DBOperations.init_db(db_conn, params.test_source_db)
            await DBOperations.init_db(db_conn, params.test_target_db)
        finally:
            await db_conn.close()

        self.source_params = ctx.connection_params
        self.target_params = copy.copy(ctx.connection_params)
        self.target_params.database = params.test_target_db

        db_conn = await create_connection(self.source_params)
        try:
            await db_conn.execute(INIT_ENV_SQL)
        finally:
            await db_conn.close()

    async def fetch(self, connection_params, query):
        db_conn = await create_connection(connection_params)
        try:
            return await db_conn.fetch(query)
        finally:
            await db_conn.close()

    async def test_01_anonymize(self):
        result = await PgMaskApp(self.options("anonymize"), describe=describe_tables).run()
        self.assertEqual(result.result_code, ResultCode.DONE, result.error_message)

        users = await self.fetch(self.source_params, "SELECT * FROM public.users ORDER BY id")
        self.assertEqual(users[0]["email"], "user1@corp.local")
        self.assertTrue(all(row["email"].endswith("@example.com") for row in users[1:]))
        self.assertEqual(len({row["email"] for row in users}), len(users))
        self.assertTrue(all(row["last_name"] == "Doe" and row["age"] == 42 for row in users))
        self.assertTrue(all(row["full_name"] == f"Person {row['id']}" for row in users))

        mismatched = await self.fetch(self.source_params, """
            SELECT o.id FROM public.orders o JOIN public.users u ON u.id = o.user_id
            WHERE o.customer_email <> u.email
        """)
        self.assertEqual(mismatched, [])

        triggers = await self.fetch(self.source_params, """
            SELECT tgname FROM pg_trigger WHERE tgname LIKE 'pg_mask_sync_%'
        """)
        self.assertEqual(triggers, [])

        notes = await self.fetch(self.source_params, "SELECT count(*) AS cnt FROM public.orders WHERE note IS NOT NULL")
        self.assertEqual(notes[0]["cnt"], 0)

    async def test_02_replicate(self):
        result = await PgMaskApp(
            self.options(
                "replicate",
                f"--target-db-host={params.test_db_host}",
                f"--target-db-port={params.test_db_port}",
                f"--target-db-name={params.test_target_db}",
                f"--target-db-user={params.test_db_user}",
                f"--target-db-user-password={params.test_db_user_password}",
                "--keep-fk-checks",
            ),
            describe=describe_tables,
        ).run()
        self.assertEqual(result.result_code, ResultCode.DONE, result.error_message)

        for table in ("users", "orders", "audit"):
            source = await self.fetch(self.source_params, f"SELECT count(*) AS cnt FROM public.{table}")
            target = await self.fetch(self.target_params, f"SELECT count(*) AS cnt FROM public.{table}")
            self.assertEqual(source[0]["cnt"], target[0]["cnt"], table)

        source_users = await self.fetch(self.source_params, "SELECT email FROM public.users ORDER BY id")
        target_users = await self.fetch(self.target_params, "SELECT email FROM public.users ORDER BY id")
        self.assertTrue(source_users[1]["email"].endswith("@corp.local"))
        self.assertEqual(target_users[0]["email"], "user1@corp.local")
        self.assertTrue(all(row["email"].endswith("@example.com") for row in target_users[1:]))

        foreign_keys = await self.fetch(self.target_params, """
            SELECT conname FROM pg_constraint WHERE contype = 'f' AND conrelid = 'public.orders'::regclass
        """)
        self.assertEqual(len(foreign_keys), 1)

        next_id = await self.fetch(self.target_params, "SELECT nextval(pg_get_serial_sequence('public.users', 'id')) AS id")
        self.assertEqual(next_id[0]["id"], 51)

        indexes = await self.fetch(self.target_params, "SELECT indexname FROM pg_indexes WHERE indexname = 'audit_user_idx'")
        self.assertEqual(len(indexes), 1)

    async def test_03_dry_run(self):
        result = await PgMaskApp(self.options("anonymize", "--dry-run"), describe=describe_tables).run()
        self.assertEqual(result.result_code, ResultCode.DONE, result.error_message)

        users = await self.fetch(self.source_params, "SELECT email FROM public.users ORDER BY id")
        self.assertTrue(all(row["email"].endswith("@corp.local") for row in users))


if __name__ == "__main__":
    unittest.main()
