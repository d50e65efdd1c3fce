from enum import Enum


class ResultCode(Enum):
    DONE = "done"
    FAIL = "fail"
    UNKNOWN = "unknown"


class VerboseOptions(Enum):
    INFO = "info"
    DEBUG = "debug"
    ERROR = "error"


class AnonMode(Enum):
    ANONYMIZE = "anonymize"  # replace column values in place
    REPLICATE = "replicate"  # recreate selected tables in the target database with anonymized rows


class TriggerState(Enum):
    ABSENT = "absent"
    INSTALLED = "installed"
    REMOVED = "removed"
