import argparse
import asyncio
import sys
import uuid
from datetime import datetime
from typing import Dict, List, Optional

from pg_mask.app import PgMaskApp
from pg_mask.common.constants import (
    RUNS_BASE_DIR,
    DEFAULT_DB_PORT,
    DEFAULT_DB_CONNECTIONS,
    DEFAULT_MAX_IN_FLIGHT,
    DEFAULT_GENERATOR_LOCALE,
    DEFAULT_PRIMARY_KEY,
)
from pg_mask.common.dto import PgMaskResult, RunOptions
from pg_mask.common.enums import AnonMode, VerboseOptions, ResultCode
from pg_mask.common.exceptions import ConfigurationError
from pg_mask.common.utils import parse_comma_separated_list, read_yaml
from pg_mask.version import __version__

DEFAULTS = {
    "db_port": DEFAULT_DB_PORT,
    "target_db_port": DEFAULT_DB_PORT,
    "db_connections": DEFAULT_DB_CONNECTIONS,
    "max_in_flight": DEFAULT_MAX_IN_FLIGHT,
    "default_locale": DEFAULT_GENERATOR_LOCALE,
    "default_primary": DEFAULT_PRIMARY_KEY,
    "verbose": VerboseOptions.INFO.value,
}


def common_parser():
    parser = argparse.ArgumentParser(add_help=False)
    parser.add_argument(
        "--db-host",
        type=str,
        help="""Source database host""",
    )
    parser.add_argument(
        "--db-port",
        type=int,
        help=f"""Source database port (default: {DEFAULT_DB_PORT})""",
    )
    parser.add_argument(
        "--db-name",
        type=str,
        help="""Source database name""",
    )
    parser.add_argument(
        "--db-user",
        type=str,
        help="""Source database user""",
    )
    parser.add_argument(
        "--db-user-password",
        type=str,
        help="""Source database user password, PGPASSWORD is used when omitted""",
    )
    parser.add_argument(
        "--db-passfile",
        type=str,
        help="""Path to a file containing the password used for authentication""",
    )
    parser.add_argument(
        "--tables-file",
        type=str,
        help="""Python file defining describe(anonymizer), which declares the anonymized tables""",
    )
    parser.add_argument(
        "--db-connections",
        type=int,
        help=f"""Maximum number of database connections per pool (default: {DEFAULT_DB_CONNECTIONS})""",
    )
    parser.add_argument(
        "--max-in-flight",
        type=int,
        help=f"""Maximum number of statements in flight in one wave (default: {DEFAULT_MAX_IN_FLIGHT})""",
    )
    parser.add_argument(
        "--default-locale",
        type=str,
        help=f"""Locale of the fake values generator (default: {DEFAULT_GENERATOR_LOCALE})""",
    )
    parser.add_argument(
        "--default-primary",
        type=parse_comma_separated_list,
        help="""Comma separated primary key columns used for tables which do not declare one (default: id)""",
    )
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="""Read rows and log the statements without changing anything""",
    )
    parser.add_argument(
        "--config",
        type=str,
        help="""Path to configuration file of pg_mask in YAML, command line options take precedence""",
    )
    parser.add_argument(
        "--version",
        help="""Show the version number and exit""",
        action="store_true",
    )
    parser.add_argument(
        "--verbose",
        dest="verbose",
        choices=list(v.value for v in VerboseOptions),
        help="""Sets the log verbosity level: "info", "debug", "error". (default: info)""",
    )
    parser.add_argument(
        "--debug",
        help="""Enables debug mode (equivalent to "--verbose=debug")""",
        action="store_true",
    )
    return parser


def target_parser():
    p = argparse.ArgumentParser(add_help=False)
    p.add_argument(
        "--target-db-host",
        type=str,
        help="""Target database host""",
    )
    p.add_argument(
        "--target-db-port",
        type=int,
        help=f"""Target database port (default: {DEFAULT_DB_PORT})""",
    )
    p.add_argument(
        "--target-db-name",
        type=str,
        help="""Target database name""",
    )
    p.add_argument(
        "--target-db-user",
        type=str,
        help="""Target database user""",
    )
    p.add_argument(
        "--target-db-user-password",
        type=str,
        help="""Target database user password, PGPASSWORD is used when omitted""",
    )
    p.add_argument(
        "--target-db-passfile",
        type=str,
        help="""Path to a file containing the target password used for authentication""",
    )
    p.add_argument(
        "--keep-fk-checks",
        action="store_true",
        help="""Do not set session_replication_role = replica on target connections (it needs superuser rights)""",
    )
    return p


def get_arg_parser():
    parser = argparse.ArgumentParser(
        prog="pg_mask",
        description="Anonymizes PostgreSQL tables in place or into another database",
    )

    sub = parser.add_subparsers(dest="mode", help="Work mode", required=True)

    sub.add_parser(
        AnonMode.ANONYMIZE.value,
        parents=[common_parser()],
        help="""Replaces the described columns of the source database in place.""",
    )
    sub.add_parser(
        AnonMode.REPLICATE.value,
        parents=[common_parser(), target_parser()],
        help="""Recreates the described tables in the target database and fills them with anonymized rows.""",
    )
    return parser


def merge_config(args_dict: Dict, config: Dict) -> Dict:
    """
    Fill options missing on the command line from the config file, then from defaults
    """
    for key, value in (config or {}).items():
        key = str(key).replace("-", "_")
        if key == "mode":
            continue
        if args_dict.get(key) is None or args_dict.get(key) is False:
            args_dict[key] = value

    for key, value in DEFAULTS.items():
        if args_dict.get(key) is None:
            args_dict[key] = value

    if isinstance(args_dict.get("default_primary"), str):
        args_dict["default_primary"] = parse_comma_separated_list(args_dict["default_primary"])

    return args_dict


def build_run_options(cli_run_params: Optional[List[str]] = None) -> RunOptions:
    if cli_run_params is None:
        cli_run_params = sys.argv[1:]

    # Handle --version before subcommand parsing
    if "--version" in cli_run_params:
        print("Version %s" % __version__)
        sys.exit(0)

    parser = get_arg_parser()
    args_dict = vars(parser.parse_args(cli_run_params))

    if args_dict.get("config"):
        try:
            config = read_yaml(args_dict["config"])
        except (OSError, ValueError) as exc:
            raise ConfigurationError(f"Can't read config file {args_dict['config']}: {exc}") from exc
        if not isinstance(config, dict):
            raise ConfigurationError(f"Config file {args_dict['config']} must contain a mapping")
        args_dict = merge_config(args_dict, config)
    else:
        args_dict = merge_config(args_dict, {})

    if args_dict.get("debug") or args_dict.get("verbose") == VerboseOptions.DEBUG.value:
        args_dict["debug"] = True
        args_dict["verbose"] = VerboseOptions.DEBUG.value

    try:
        args_dict["verbose"] = VerboseOptions(args_dict["verbose"])
    except ValueError as exc:
        raise ConfigurationError(f"Unknown verbosity level: {args_dict['verbose']}") from exc

    known_fields = set(RunOptions.__dataclass_fields__)
    unknown = set(args_dict) - known_fields
    if unknown:
        raise ConfigurationError(f"Unknown option(s): {', '.join(sorted(unknown))}")

    internal_operation_id = str(uuid.uuid4())
    start_date = datetime.today()
    run_dir = str(
        RUNS_BASE_DIR /
        str(start_date.year) /
        str(start_date.month) /
        str(start_date.day) /
        internal_operation_id
    )

    args_dict.update({
        'pg_mask_version': __version__,
        'internal_operation_id': internal_operation_id,
        'run_dir': run_dir,
        'mode': AnonMode(args_dict['mode']),
    })
    return RunOptions(**args_dict)


async def run_pg_mask(cli_run_params: Optional[List[str]] = None) -> PgMaskResult:
    """
    Run pg_mask
    :param cli_run_params: list of params in command line format
    :return: result of pg_mask
    """
    options = build_run_options(cli_run_params)
    return await PgMaskApp(options).run()


def main(argv=None):
    try:
        result = asyncio.run(run_pg_mask(argv))
    except ConfigurationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        sys.exit(1)

    if result.result_code == ResultCode.FAIL:
        sys.exit(1)
    print("Anonymization has been completed!")
