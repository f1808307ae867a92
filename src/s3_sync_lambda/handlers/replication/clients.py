"""Scoped S3 clients backed by freshly assumed IAM role credentials."""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

import boto3
from aibs_informatics_core.utils.hashing import uuid_str
from aibs_informatics_core.utils.logging import get_logger
from botocore.client import BaseClient
from botocore.exceptions import BotoCoreError, ClientError

from s3_sync_lambda.handlers.replication.errors import CredentialError

logger = get_logger(__name__)

ROLE_SESSION_NAME_PREFIX = "s3-sync"


@dataclass(frozen=True)
class ScopedClient:
    """An S3 client acting as one assumed role in one region.

    Used for a single action and then discarded. The temporary credentials behind it
    expire at `expiration`.
    """

    role_arn: str
    region: str
    s3: BaseClient
    expiration: Optional[datetime] = None

    @property
    def expired(self) -> bool:
        if self.expiration is None:
            return False
        return datetime.now(timezone.utc) >= self.expiration


def get_scoped_client(
    role_arn: str, region: str, session_name: Optional[str] = None
) -> ScopedClient:
    """Exchange the ambient identity for `role_arn` and bind an S3 client to it.

    Every call performs a new AssumeRole exchange. Credentials are never cached.

    Args:
        role_arn (str): ARN of the role to assume.
        region (str): region the S3 client is bound to.
        session_name (Optional[str]): role session name. Defaults to a unique name.

    Raises:
        CredentialError: if the role cannot be assumed.
    """
    session_name = session_name or f"{ROLE_SESSION_NAME_PREFIX}-{uuid_str()}"
    logger.info(f"Assuming role {role_arn} (session {session_name}) for region {region}")
    try:
        sts = boto3.Session().client("sts", region_name=region)
        credentials = sts.assume_role(RoleArn=role_arn, RoleSessionName=session_name)[
            "Credentials"
        ]
        session = boto3.Session(
            aws_access_key_id=credentials["AccessKeyId"],
            aws_secret_access_key=credentials["SecretAccessKey"],
            aws_session_token=credentials["SessionToken"],
            region_name=region,
        )
        s3 = session.client("s3")
    except (BotoCoreError, ClientError) as e:
        logger.error(f"Failed to assume role {role_arn} in {region}: {e}")
        raise CredentialError(role_arn, region, str(e)) from e

    return ScopedClient(
        role_arn=role_arn, region=region, s3=s3, expiration=credentials.get("Expiration")
    )
