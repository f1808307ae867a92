"""Bucket listing probe.

Assumes a role and lists the buckets it can see. Used to verify that a role's trust
policy and permissions are set up before wiring it into replication.
"""

from dataclasses import dataclass
from typing import List, Optional

from aibs_informatics_core.models.base import ListField, SchemaModel, StringField, custom_field
from aibs_informatics_core.utils.os_operations import get_env_var
from botocore.exceptions import BotoCoreError, ClientError

from s3_sync_lambda.common.handler import LambdaHandler
from s3_sync_lambda.handlers.replication.clients import get_scoped_client
from s3_sync_lambda.handlers.replication.errors import CredentialError

ROLE_ARN_ENV_VAR = "ROLE_ARN"
REGION_ENV_VAR = "REGION"
DEFAULT_REGION = "us-west-2"


@dataclass
class ListBucketsRequest(SchemaModel):
    """Overrides for the role and region otherwise read from ROLE_ARN / REGION."""

    role_arn: Optional[str] = custom_field(default=None, mm_field=StringField())
    region: Optional[str] = custom_field(default=None, mm_field=StringField())


@dataclass
class BucketSummary(SchemaModel):
    name: str = custom_field(mm_field=StringField())
    creation_date: str = custom_field(mm_field=StringField())


@dataclass
class ListBucketsResponse(SchemaModel):
    buckets: List[BucketSummary] = custom_field(
        default_factory=list, mm_field=ListField(BucketSummary.as_mm_field())
    )
    error: Optional[str] = custom_field(default=None, mm_field=StringField())


class ListBucketsHandler(LambdaHandler[ListBucketsRequest, ListBucketsResponse]):
    def handle(self, request: ListBucketsRequest) -> ListBucketsResponse:
        self.logger.info("ListBuckets probe running...")

        role_arn = request.role_arn or get_env_var(ROLE_ARN_ENV_VAR)
        if not role_arn:
            return ListBucketsResponse(error=f"FATAL: {ROLE_ARN_ENV_VAR} is not defined in ENV")
        region = request.region or get_env_var(REGION_ENV_VAR, default_value=DEFAULT_REGION)

        try:
            client = get_scoped_client(role_arn, region)
            result = client.s3.list_buckets()
        except (CredentialError, BotoCoreError, ClientError) as e:
            self.logger.error(f"Unable to list buckets, {e}")
            return ListBucketsResponse(error=f"Unable to list buckets, {e}")

        return ListBucketsResponse(
            buckets=[
                BucketSummary(name=_["Name"], creation_date=_["CreationDate"].isoformat())
                for _ in result.get("Buckets", [])
            ]
        )


lambda_handler = ListBucketsHandler.get_handler()
