from pg_mask.common.utils import quote_ident


def get_table_columns_query() -> str:
    return """
    SELECT
        a.attname AS name,
        format_type(a.atttypid, a.atttypmod) AS type,
        a.attnotnull AS not_null,
        pg_get_expr(d.adbin, d.adrelid) AS "default",
        a.attidentity::text AS identity,
        a.attgenerated::text AS generated,
        pg_get_serial_sequence(quote_ident(n.nspname) || '.' || quote_ident(c.relname), a.attname) AS serial_sequence
    FROM pg_attribute a
    JOIN pg_class c ON c.oid = a.attrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    LEFT JOIN pg_attrdef d ON d.adrelid = a.attrelid AND d.adnum = a.attnum
    WHERE
        n.nspname = $1
        AND c.relname = $2
        AND c.relkind IN ('r', 'p')
        AND a.attnum > 0
        AND NOT a.attisdropped
    ORDER BY a.attnum
    """


def get_table_constraints_query() -> str:
    return """
    SELECT
        con.conname AS name,
        con.contype::text AS type,
        pg_get_constraintdef(con.oid) AS definition
    FROM pg_constraint con
    JOIN pg_class c ON c.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE
        n.nspname = $1
        AND c.relname = $2
        AND con.contype IN ('p', 'u', 'c', 'x', 'f')
    ORDER BY
        CASE con.contype WHEN 'p' THEN 0 WHEN 'u' THEN 1 WHEN 'x' THEN 2 WHEN 'c' THEN 3 ELSE 4 END,
        con.conname
    """


def get_table_indexes_query() -> str:
    # Indexes created by PRIMARY KEY / UNIQUE / EXCLUDE come with the constraints
    return """
    SELECT pg_get_indexdef(i.indexrelid) AS definition
    FROM pg_index i
    JOIN pg_class c ON c.oid = i.indrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    WHERE
        n.nspname = $1
        AND c.relname = $2
        AND NOT EXISTS (
            SELECT 1
            FROM pg_constraint con
            WHERE con.conindid = i.indexrelid AND con.conrelid = i.indrelid AND con.contype IN ('p', 'u', 'x')
        )
    ORDER BY i.indexrelid
    """


def get_foreign_keys_query(referenced: bool = False) -> str:
    """
    Foreign keys owned by the tables in $1, or referencing them when `referenced` is set
    """
    filtered_table = "rn.nspname || '.' || rc.relname" if referenced else "n.nspname || '.' || c.relname"
    return f"""
    SELECT
        con.conname AS name,
        n.nspname AS table_schema,
        c.relname AS table_name,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.conkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_attribute a ON a.attrelid = con.conrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        )::text[] AS columns,
        rn.nspname AS referenced_schema,
        rc.relname AS referenced_table,
        ARRAY(
            SELECT a.attname
            FROM unnest(con.confkey) WITH ORDINALITY AS k(attnum, ord)
            JOIN pg_attribute a ON a.attrelid = con.confrelid AND a.attnum = k.attnum
            ORDER BY k.ord
        )::text[] AS referenced_columns,
        con.confupdtype::text AS update_rule,
        con.confdeltype::text AS delete_rule,
        pg_get_constraintdef(con.oid) AS definition
    FROM pg_constraint con
    JOIN pg_class c ON c.oid = con.conrelid
    JOIN pg_namespace n ON n.oid = c.relnamespace
    JOIN pg_class rc ON rc.oid = con.confrelid
    JOIN pg_namespace rn ON rn.oid = rc.relnamespace
    WHERE
        con.contype = 'f'
        AND ({filtered_table}) = ANY($1::text[])
    ORDER BY n.nspname, c.relname, con.conname
    """


def get_sequence_max_value_init_query(table: str, column: str) -> str:
    """
    Move the sequence owned by the column past the largest loaded value
    :param table: quoted table name
    :param column: column name as stored in the catalog
    """
    return f"""
    SELECT setval(
        pg_get_serial_sequence('{table.replace("'", "''")}', '{column.replace("'", "''")}'),
        coalesce(max({quote_ident(column)}), 0) + 1,
        false
    )
    FROM {table}
    """
