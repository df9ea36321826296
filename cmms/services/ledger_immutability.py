from sqlalchemy import inspect, text

# Append-only tables: the ledger itself and the closure snapshots.
IMMUTABLE_TABLES = ("job_cost_log", "job_cost_snapshots")


def table_exists(engine, table_name: str) -> bool:
    if engine is None:
        return False
    return inspect(engine).has_table(table_name)


def postgres_immutability_ddl(table_name: str) -> str:
    return f"""
    CREATE OR REPLACE FUNCTION {table_name}_block_mutation()
    RETURNS trigger AS $$
    BEGIN
        RAISE EXCEPTION '{table_name} is immutable';
    END;
    $$ LANGUAGE plpgsql;

    DROP TRIGGER IF EXISTS trg_{table_name}_block_update ON {table_name};
    CREATE TRIGGER trg_{table_name}_block_update
    BEFORE UPDATE ON {table_name}
    FOR EACH ROW
    EXECUTE FUNCTION {table_name}_block_mutation();

    DROP TRIGGER IF EXISTS trg_{table_name}_block_delete ON {table_name};
    CREATE TRIGGER trg_{table_name}_block_delete
    BEFORE DELETE ON {table_name}
    FOR EACH ROW
    EXECUTE FUNCTION {table_name}_block_mutation();
    """


def sqlite_immutability_ddl(table_name: str) -> list:
    return [
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_{table_name}_block_update
        BEFORE UPDATE ON {table_name}
        BEGIN
            SELECT RAISE(ABORT, '{table_name} is immutable');
        END;
        """,
        f"""
        CREATE TRIGGER IF NOT EXISTS trg_{table_name}_block_delete
        BEFORE DELETE ON {table_name}
        BEGIN
            SELECT RAISE(ABORT, '{table_name} is immutable');
        END;
        """,
    ]


def install_ledger_immutability(engine) -> None:
    """
    Install triggers that block UPDATE/DELETE on the ledger and snapshot tables.
    PostgreSQL and SQLite only; safe to run multiple times.
    """
    if engine is None:
        return

    dialect = getattr(engine, "dialect", None)
    dialect_name = getattr(dialect, "name", "")
    if dialect_name not in {"postgresql", "sqlite"}:
        return

    present = [t for t in IMMUTABLE_TABLES if table_exists(engine, t)]

    with engine.begin() as conn:
        for table_name in present:
            if dialect_name == "postgresql":
                conn.execute(text(postgres_immutability_ddl(table_name)))
            else:
                for statement in sqlite_immutability_ddl(table_name):
                    conn.execute(text(statement))
