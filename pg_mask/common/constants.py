from pathlib import Path

DEFAULT_PRIMARY_KEY = ["id"]
DEFAULT_SCHEMA = "public"
DEFAULT_GENERATOR_LOCALE = "en_US"
DEFAULT_DB_PORT = 5432
DEFAULT_DB_CONNECTIONS = 20
DEFAULT_MAX_IN_FLIGHT = 20

ROW_PLACEHOLDER = "#row#"
SYNC_TRIGGER_PREFIX = "pg_mask_sync_"
ROW_FILTER_COLUMN_PREFIX = "__pg_mask_filter_"

SERVER_SETTINGS = {
    "application_name": "pg_mask",
    "statement_timeout": "0",
    "lock_timeout": "0",
}

# Disables foreign key and user trigger firing for every session of the target pool
REPLICATION_SERVER_SETTINGS = {
    "session_replication_role": "replica",
}

SECRET_RUN_OPTIONS = [
    "db_user_password",
    "db_passfile",
    "target_db_user_password",
    "target_db_passfile",
]

RUNS_BASE_DIR = Path("runs")
LOGS_DIR_NAME = "logs"
LOGS_FILE_NAME = "pg_mask.log"
LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUP_COUNT = 10

TRACEBACK_LINES_COUNT = 100

# pg_constraint.confupdtype / confdeltype codes
FK_ACTIONS = {
    "a": "NO ACTION",
    "r": "RESTRICT",
    "c": "CASCADE",
    "n": "SET NULL",
    "d": "SET DEFAULT",
}
