"""Replication error taxonomy.

Every error carries the context (setting name, role, bucket, key, leg) needed to diagnose
a failed invocation from its log entry alone.
"""

__all__ = [
    "ReplicationError",
    "ConfigError",
    "ParseError",
    "CredentialError",
    "CopyError",
    "DownloadError",
    "UploadError",
    "CleanupError",
    "RemoveError",
    "DeleteError",
    "ConfirmError",
]

from typing import Optional

from aibs_informatics_core.exceptions import ApplicationException


class ReplicationError(ApplicationException):
    pass


class ConfigError(ReplicationError):
    """A required setting is missing or an optional one is malformed."""

    def __init__(self, name: str, reason: Optional[str] = None):
        self.name = name
        super().__init__(f"{name} {reason or 'is not configured'} in ENV.")


class ParseError(ReplicationError):
    """The notification body is not a well-formed S3 event document."""


class CredentialError(ReplicationError):
    def __init__(self, role_arn: str, region: str, reason: str):
        self.role_arn = role_arn
        self.region = region
        super().__init__(f"Unable to assume role {role_arn} in {region}: {reason}")


class CopyError(ReplicationError):
    leg: str = "copy"

    def __init__(self, bucket: str, key: str, reason: str):
        self.bucket = bucket
        self.key = key
        super().__init__(f"{self.leg.capitalize()} failed for s3://{bucket}/{key}: {reason}")


class DownloadError(CopyError):
    leg = "download"


class UploadError(CopyError):
    leg = "upload"


class CleanupError(CopyError):
    leg = "cleanup"


class RemoveError(ReplicationError):
    stage: str = "remove"

    def __init__(self, bucket: str, key: str, reason: str):
        self.bucket = bucket
        self.key = key
        super().__init__(f"{self.stage.capitalize()} failed for s3://{bucket}/{key}: {reason}")


class DeleteError(RemoveError):
    stage = "delete"


class ConfirmError(RemoveError):
    stage = "confirm deletion"
