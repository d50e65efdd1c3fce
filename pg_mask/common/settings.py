import ipaddress
import re
from typing import List, Optional

from pydantic import BaseModel, Field, ValidationError, field_validator, model_validator
from typing_extensions import Annotated

from pg_mask.common.dto import RunOptions, ConnectionParams
from pg_mask.common.enums import AnonMode
from pg_mask.common.exceptions import ConfigurationError

HOSTNAME_LABEL_PATTERN = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")

PositiveInt = Annotated[int, Field(strict=True, ge=1)]


def is_valid_host(value: str) -> bool:
    try:
        ipaddress.ip_address(value)
        return True
    except ValueError:
        pass

    if not value or len(value) > 253:
        return False

    labels = value.rstrip(".").split(".")
    return all(HOSTNAME_LABEL_PATTERN.match(label) for label in labels)


class ConnectionSettings(BaseModel):
    host: str
    port: Annotated[int, Field(strict=True, ge=1, le=65535)]
    database: Annotated[str, Field(min_length=1)]
    user: Annotated[str, Field(min_length=1)]
    password: Optional[str] = None
    passfile: Optional[str] = None

    @field_validator("host")
    @classmethod
    def check_host(cls, value: str) -> str:
        if not is_valid_host(value):
            raise ValueError(f"'{value}' is not a valid network address")
        return value

    def to_connection_params(self) -> ConnectionParams:
        return ConnectionParams(
            host=self.host,
            port=self.port,
            database=self.database,
            user=self.user,
            password=self.password or None,
            passfile=self.passfile or None,
        )


class RunSettings(BaseModel):
    mode: AnonMode
    source: ConnectionSettings
    target: Optional[ConnectionSettings] = None
    db_connections: PositiveInt
    max_in_flight: PositiveInt
    default_locale: Annotated[str, Field(min_length=1)]
    default_primary: Annotated[List[str], Field(min_length=1)]

    @model_validator(mode="after")
    def check_target(self):
        if self.mode == AnonMode.REPLICATE and self.target is None:
            raise ValueError("target database settings are required in replicate mode")
        return self


def _target_settings(options: RunOptions) -> Optional[dict]:
    if options.mode != AnonMode.REPLICATE:
        return None

    return {
        "host": options.target_db_host,
        "port": options.target_db_port,
        "database": options.target_db_name,
        "user": options.target_db_user,
        "password": options.target_db_user_password,
        "passfile": options.target_db_passfile,
    }


def validate_run_options(options: RunOptions) -> RunSettings:
    """
    Validate options of the run, nothing touches a database before this check passes
    :param options: parsed options from command line and config file
    :return: validated settings
    :raises ConfigurationError: on missing or invalid settings
    """
    try:
        return RunSettings(
            mode=options.mode,
            source={
                "host": options.db_host,
                "port": options.db_port,
                "database": options.db_name,
                "user": options.db_user,
                "password": options.db_user_password,
                "passfile": options.db_passfile,
            },
            target=_target_settings(options),
            db_connections=options.db_connections,
            max_in_flight=options.max_in_flight,
            default_locale=options.default_locale,
            default_primary=options.default_primary,
        )
    except ValidationError as exc:
        raise ConfigurationError(f"Invalid configuration:\n{exc}") from exc
