import os
from pathlib import Path
from typing import Dict, Optional

from pg_mask.common.constants import SERVER_SETTINGS, REPLICATION_SERVER_SETTINGS, LOGS_DIR_NAME, LOGS_FILE_NAME
from pg_mask.common.dto import ConnectionParams, RunOptions
from pg_mask.common.enums import AnonMode
from pg_mask.common.settings import RunSettings, validate_run_options
from pg_mask.logger import logger_add_file_handler, logger_set_verbosity, get_logger


class Context:
    options: RunOptions
    settings: RunSettings
    connection_params: ConnectionParams
    target_connection_params: Optional[ConnectionParams] = None

    def __init__(self, options: RunOptions):
        self.options = options
        self.logger = None
        self.setup_logger()

        if not options.db_user_password:
            options.db_user_password = os.environ.get("PGPASSWORD")
        if options.mode == AnonMode.REPLICATE and not options.target_db_user_password:
            options.target_db_user_password = os.environ.get("PGPASSWORD")

        self.settings = validate_run_options(options)

        self.server_settings: Dict = SERVER_SETTINGS.copy()
        self.target_server_settings: Dict = SERVER_SETTINGS.copy()
        if not options.keep_fk_checks:
            self.target_server_settings.update(REPLICATION_SERVER_SETTINGS)

        self.connection_params = self.settings.source.to_connection_params()
        if self.settings.target is not None:
            self.target_connection_params = self.settings.target.to_connection_params()

    def setup_logger(self):
        logger_add_file_handler(Path(self.options.run_dir) / LOGS_DIR_NAME / LOGS_FILE_NAME)
        logger_set_verbosity(self.options.verbose)
        self.logger = get_logger()
