from typing import Callable, List, Optional

from prettytable import PrettyTable, SINGLE_BORDER

from pg_mask.anonymizer import Anonymizer
from pg_mask.common.dto import PgMaskResult, RunOptions, TableReport
from pg_mask.common.exceptions import ConfigurationError
from pg_mask.common.utils import exception_helper, load_describe_callback
from pg_mask.context import Context
from pg_mask.logger import get_logger, logger_remove_file_handler
from pg_mask.version import __version__


class PgMaskApp:

    def __init__(self, options: RunOptions, describe: Optional[Callable[[Anonymizer], None]] = None, generator=None):
        self.options = options
        self.describe = describe
        self.generator = generator
        self.context: Optional[Context] = None
        self.anonymizer: Optional[Anonymizer] = None
        self.result = PgMaskResult()
        self.logger = get_logger()

    def _bootstrap(self):
        self.context = Context(self.options)
        self.logger = self.context.logger
        self.logger.info(
            "============> Started pg_mask (v%s) in mode: %s"
            % (__version__, self.options.mode.value)
        )
        if self.options.debug:
            params_info = "#--------------- Run options\n"
            params_info += self.options.to_json()
            params_info += "\n#-----------------------------------"
            self.logger.debug(params_info)

    def _describe_tables(self):
        self.anonymizer = Anonymizer(self.context, generator=self.generator)

        describe = self.describe
        if describe is None:
            if not self.options.tables_file:
                raise ConfigurationError("No tables described, --tables-file is required")
            describe = load_describe_callback(self.options.tables_file)

        describe(self.anonymizer)

        if not len(self.anonymizer.registry):
            raise ConfigurationError("No tables described")

        for blueprint in self.anonymizer.registry:
            self.logger.debug(repr(blueprint))

    def _report(self, reports: List[TableReport]):
        table = PrettyTable(["table", "rows", "elapsed, sec", "sync triggers"], align="l")
        table.set_style(SINGLE_BORDER)
        for report in reports:
            table.add_row([report.table, report.rows, report.elapsed, len(report.triggers)])

        self.logger.info("Processed tables:\n%s" % table.get_string())

    async def run(self) -> PgMaskResult:
        self.result.start(self.options)
        try:
            self._bootstrap()
            self._describe_tables()

            reports = await self.anonymizer.run()
            self._report(reports)
            self.result.complete(reports)
        except Exception as exc:
            self.logger.error(exception_helper(show_traceback=True))
            self.result.fail(exc)
        finally:
            self.logger.info(
                f"<============ Finished pg_mask in mode: {self.options.mode.value}, "
                f"result_code = {self.result.result_code.value}, "
                f"rows: {self.result.total_rows}, elapsed: {self.result.elapsed} sec"
            )
            logger_remove_file_handler()

        return self.result
