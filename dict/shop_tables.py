"""
Tables of a sample shop database, run with:

    pg_mask anonymize --db-host=127.0.0.1 --db-name=shop --db-user=postgres --tables-file=dict/shop_tables.py
"""
from pg_mask.blueprint import ColumnRule, Literal


def describe(anonymizer):
    anonymizer.table("users", lambda table: (
        table.primary("id"),
        # keep the administrator account usable
        table.column("email").where("id != 1").replace_with("user_#row#@example.com")
        .sync_with("orders", "customer_email"),
        # values of replace_by_fields() are visible to the rules declared after them
        table.column("first_name").replace_by_fields(lambda row, generator: generator.first_name()),
        table.column("last_name").replace_by_fields(lambda row, generator: generator.last_name()),
        table.column("full_name").replace_by_fields(
            lambda row, generator: f"{row['first_name']} {row['last_name']}"
        ),
        table.column("phone").replace_with(None),
    ))

    anonymizer.table("orders", lambda table: (
        table.global_where("created_at < now() - interval '1 day'"),
        table.column("delivery_address").replace_with(lambda generator: generator.address()),
    ))

    anonymizer.declare(
        "audit.events",
        primary=["id"],
        columns=[ColumnRule("payload", replacement=Literal("{}"))],
    )
