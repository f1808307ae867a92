"""Replication settings resolved from the environment.

The six required settings identify the role, bucket and region on each side of the
replication. They are read once per invocation and passed explicitly to the router and
executor; nothing else reads the environment.
"""

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Optional

from aibs_informatics_core.utils.os_operations import get_env_var

from s3_sync_lambda.handlers.replication.errors import ConfigError

SOURCE_ROLE_ARN_ENV_VAR = "SOURCE_ROLE_ARN"
SOURCE_BUCKET_ENV_VAR = "SOURCE_BUCKET"
SOURCE_BUCKET_REGION_ENV_VAR = "SOURCE_BUCKET_REGION"
TARGET_ROLE_ARN_ENV_VAR = "TARGET_ROLE_ARN"
TARGET_BUCKET_ENV_VAR = "TARGET_BUCKET"
TARGET_BUCKET_REGION_ENV_VAR = "TARGET_BUCKET_REGION"

REQUIRED_ENV_VARS = (
    SOURCE_ROLE_ARN_ENV_VAR,
    SOURCE_BUCKET_ENV_VAR,
    SOURCE_BUCKET_REGION_ENV_VAR,
    TARGET_ROLE_ARN_ENV_VAR,
    TARGET_BUCKET_ENV_VAR,
    TARGET_BUCKET_REGION_ENV_VAR,
)

TARGET_KEY_STRATEGY_ENV_VAR = "TARGET_KEY_STRATEGY"
CONTINUE_ON_ERROR_ENV_VAR = "CONTINUE_ON_ERROR"
STAGING_DIR_ENV_VAR = "STAGING_DIR"
DELETE_WAIT_DELAY_SECONDS_ENV_VAR = "DELETE_WAIT_DELAY_SECONDS"
DELETE_WAIT_MAX_ATTEMPTS_ENV_VAR = "DELETE_WAIT_MAX_ATTEMPTS"

DEFAULT_DELETE_WAIT_DELAY_SECONDS = 5
DEFAULT_DELETE_WAIT_MAX_ATTEMPTS = 20

REPLICA_KEY_PREFIX = "copy_"

TRUE_VALUES = ("1", "true", "yes", "on")
FALSE_VALUES = ("0", "false", "no", "off")


class TargetKeyStrategy(str, Enum):
    """How the replica key in the target bucket is derived from the source key.

    Attributes:
        PRESERVE_PREFIX: "copy_" + source key, the name of the local staging file.
        ORIGINAL_KEY: the source key, unchanged.
    """

    PRESERVE_PREFIX = "preserve_prefix"
    ORIGINAL_KEY = "original_key"


@dataclass(frozen=True)
class ReplicationConfig:
    source_role_arn: str
    source_bucket: str
    source_region: str
    target_role_arn: str
    target_bucket: str
    target_region: str
    target_key_strategy: TargetKeyStrategy = TargetKeyStrategy.PRESERVE_PREFIX
    continue_on_error: bool = False
    staging_dir: Optional[Path] = None
    delete_wait_delay: int = DEFAULT_DELETE_WAIT_DELAY_SECONDS
    delete_wait_max_attempts: int = DEFAULT_DELETE_WAIT_MAX_ATTEMPTS

    def __post_init__(self):
        for name, value in zip(
            REQUIRED_ENV_VARS,
            (
                self.source_role_arn,
                self.source_bucket,
                self.source_region,
                self.target_role_arn,
                self.target_bucket,
                self.target_region,
            ),
        ):
            if not value:
                raise ConfigError(name)

    def get_replica_key(self, key: str) -> str:
        """Key under which the replica of `key` is stored in the target bucket."""
        if self.target_key_strategy == TargetKeyStrategy.ORIGINAL_KEY:
            return key
        return f"{REPLICA_KEY_PREFIX}{key}"

    @classmethod
    def from_env(cls) -> "ReplicationConfig":
        """Read the replication settings from the environment.

        Required settings are read in order and resolution stops at the first one that
        is missing or empty.

        Raises:
            ConfigError: naming the first missing required setting, or a malformed
                optional setting.
        """
        required = []
        for name in REQUIRED_ENV_VARS:
            value = get_env_var(name)
            if not value:
                raise ConfigError(name)
            required.append(value)

        staging_dir = get_env_var(STAGING_DIR_ENV_VAR)
        return cls(
            *required,
            target_key_strategy=_get_key_strategy(),
            continue_on_error=_get_bool(CONTINUE_ON_ERROR_ENV_VAR, default=False),
            staging_dir=Path(staging_dir) if staging_dir else None,
            delete_wait_delay=_get_positive_int(
                DELETE_WAIT_DELAY_SECONDS_ENV_VAR, DEFAULT_DELETE_WAIT_DELAY_SECONDS
            ),
            delete_wait_max_attempts=_get_positive_int(
                DELETE_WAIT_MAX_ATTEMPTS_ENV_VAR, DEFAULT_DELETE_WAIT_MAX_ATTEMPTS
            ),
        )


def resolve_replication_config() -> ReplicationConfig:
    return ReplicationConfig.from_env()


def _get_key_strategy() -> TargetKeyStrategy:
    value = get_env_var(TARGET_KEY_STRATEGY_ENV_VAR)
    if not value:
        return TargetKeyStrategy.PRESERVE_PREFIX
    try:
        return TargetKeyStrategy(value.lower())
    except ValueError:
        options = [_.value for _ in TargetKeyStrategy]
        raise ConfigError(TARGET_KEY_STRATEGY_ENV_VAR, f"must be one of {options}, got {value!r}")


def _get_bool(name: str, default: bool) -> bool:
    value = get_env_var(name)
    if not value:
        return default
    if value.lower() in TRUE_VALUES:
        return True
    if value.lower() in FALSE_VALUES:
        return False
    raise ConfigError(name, f"must be a boolean, got {value!r}")


def _get_positive_int(name: str, default: int) -> int:
    value = get_env_var(name)
    if not value:
        return default
    try:
        number = int(value)
    except ValueError:
        raise ConfigError(name, f"must be an integer, got {value!r}")
    if number < 1:
        raise ConfigError(name, f"must be positive, got {number}")
    return number
