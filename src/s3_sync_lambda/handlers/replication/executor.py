"""Copy and delete actions against the source and target buckets.

A copy is a two leg transfer through a local staging artifact:

    source bucket --(download as source role)--> staging file --(upload as target role)--> target bucket

The staging artifact lives in its own uniquely named directory so that concurrent
invocations replicating the same key never share a file, and it is removed on every
exit path once created.
"""

import shutil
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Callable, Iterator, Optional

from aibs_informatics_core.utils.logging import get_logger
from boto3.exceptions import Boto3Error
from botocore.exceptions import BotoCoreError, ClientError

from s3_sync_lambda.handlers.replication.clients import ScopedClient, get_scoped_client
from s3_sync_lambda.handlers.replication.config import REPLICA_KEY_PREFIX, ReplicationConfig
from s3_sync_lambda.handlers.replication.errors import (
    CleanupError,
    ConfirmError,
    CredentialError,
    DeleteError,
    DownloadError,
    UploadError,
)

logger = get_logger(__name__)

STAGING_DIR_PREFIX = "s3-sync-"

ClientFactory = Callable[[str, str], ScopedClient]

TRANSFER_ERRORS = (Boto3Error, BotoCoreError, ClientError, OSError)


@dataclass
class CopyResult:
    replica_key: str
    size_bytes: int


@dataclass
class ReplicationExecutor:
    """Executes copy and delete actions for one invocation's configuration.

    Attributes:
        config: the resolved replication configuration.
        client_factory: builds a ScopedClient from (role_arn, region). Defaults to
            `get_scoped_client`, which assumes the role on every call.
    """

    config: ReplicationConfig
    client_factory: Optional[ClientFactory] = None

    def get_client(self, role_arn: str, region: str) -> ScopedClient:
        """Build the scoped client for one leg.

        Raises:
            CredentialError: if the role cannot be assumed, or the credentials handed
                back have already expired.
        """
        client = (self.client_factory or get_scoped_client)(role_arn, region)
        if client.expired:
            raise CredentialError(role_arn, region, f"credentials expired at {client.expiration}")
        return client

    def copy(self, bucket: str, key: str) -> CopyResult:
        """Copy s3://bucket/key to the target bucket.

        Raises:
            CredentialError: if either role cannot be assumed.
            DownloadError: if the object cannot be read into the staging artifact.
            UploadError: if the staging artifact cannot be written to the target bucket.
            CleanupError: if the staging artifact cannot be removed afterwards.
        """
        replica_key = self.config.get_replica_key(key)
        source = self.get_client(self.config.source_role_arn, self.config.source_region)

        with staging_artifact(bucket, key, self.config.staging_dir) as artifact:
            logger.info(f"Downloading s3://{bucket}/{key} to {artifact} as {source.role_arn}")
            try:
                source.s3.download_file(bucket, key, str(artifact))
                size_bytes = artifact.stat().st_size
            except TRANSFER_ERRORS as e:
                raise DownloadError(bucket, key, str(e)) from e
            logger.info(f"Downloaded {artifact} ({size_bytes} bytes)")

            target = self.get_client(self.config.target_role_arn, self.config.target_region)
            target_bucket = self.config.target_bucket
            logger.info(
                f"Uploading {artifact} to s3://{target_bucket}/{replica_key} as {target.role_arn}"
            )
            try:
                target.s3.upload_file(str(artifact), target_bucket, replica_key)
            except TRANSFER_ERRORS as e:
                raise UploadError(bucket, key, f"s3://{target_bucket}/{replica_key}: {e}") from e

        return CopyResult(replica_key=replica_key, size_bytes=size_bytes)

    def delete(self, key: str) -> str:
        """Delete the replica of `key` from the target bucket and wait until it is gone.

        Returns:
            the replica key that was removed.

        Raises:
            CredentialError: if the target role cannot be assumed.
            DeleteError: if the delete request is rejected.
            ConfirmError: if the object is not confirmed absent within the wait bounds.
        """
        replica_key = self.config.get_replica_key(key)
        target_bucket = self.config.target_bucket
        target = self.get_client(self.config.target_role_arn, self.config.target_region)

        logger.info(f"Deleting s3://{target_bucket}/{replica_key} as {target.role_arn}")
        try:
            target.s3.delete_object(Bucket=target_bucket, Key=replica_key)
        except (BotoCoreError, ClientError) as e:
            raise DeleteError(target_bucket, replica_key, str(e)) from e

        try:
            target.s3.get_waiter("object_not_exists").wait(
                Bucket=target_bucket,
                Key=replica_key,
                WaiterConfig={
                    "Delay": self.config.delete_wait_delay,
                    "MaxAttempts": self.config.delete_wait_max_attempts,
                },
            )
        except (BotoCoreError, ClientError) as e:
            raise ConfirmError(target_bucket, replica_key, str(e)) from e

        logger.info(f"Object s3://{target_bucket}/{replica_key} successfully deleted")
        return replica_key


@contextmanager
def staging_artifact(bucket: str, key: str, staging_dir: Optional[Path] = None) -> Iterator[Path]:
    """Provide a fresh local path to stage s3://bucket/key, removed on exit.

    If the body raised, a failure to remove the artifact is logged and the original
    error propagates. Otherwise a failure to remove it raises CleanupError.
    """
    try:
        artifact_dir = Path(tempfile.mkdtemp(prefix=STAGING_DIR_PREFIX, dir=staging_dir))
    except OSError as e:
        raise DownloadError(bucket, key, f"unable to create staging directory: {e}") from e
    artifact = artifact_dir / f"{REPLICA_KEY_PREFIX}{PurePosixPath(key).name or 'object'}"

    try:
        yield artifact
    except BaseException:
        try:
            remove_staging_artifact(bucket, key, artifact_dir)
        except CleanupError as e:
            logger.error(f"Staging artifact left behind after failed copy: {e}")
        raise
    remove_staging_artifact(bucket, key, artifact_dir)


def remove_staging_artifact(bucket: str, key: str, artifact_dir: Path):
    try:
        shutil.rmtree(artifact_dir)
    except FileNotFoundError:
        pass
    except OSError as e:
        raise CleanupError(bucket, key, f"unable to remove {artifact_dir}: {e}") from e
    if artifact_dir.exists():
        raise CleanupError(bucket, key, f"{artifact_dir} still exists after removal")
    logger.debug(f"Removed staging artifact {artifact_dir}")
