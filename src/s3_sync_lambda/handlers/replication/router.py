"""Replication routing handler.

Receives one S3 event notification per invocation and replicates each record's object
from the configured source bucket to the target bucket: created objects are copied,
removed objects have their replica deleted, everything else is skipped.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import List, Optional

from aibs_informatics_core.utils.json import JSON
from aibs_informatics_core.utils.logging import get_logger
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord

from s3_sync_lambda.common.handler import LambdaHandler, get_sqs_sent_time
from s3_sync_lambda.handlers.replication.config import (
    ReplicationConfig,
    resolve_replication_config,
)
from s3_sync_lambda.handlers.replication.errors import ReplicationError
from s3_sync_lambda.handlers.replication.executor import ClientFactory, ReplicationExecutor
from s3_sync_lambda.handlers.replication.model import (
    S3_EVENT_SOURCE,
    ChangeEventType,
    ChangeNotification,
    ChangeRecord,
    RecordResult,
    ReplicationAction,
    ReplicationResponse,
)

logger = get_logger(__name__)


@dataclass  # type: ignore[misc] # mypy #5374
class ReplicationRouter(LambdaHandler[ChangeNotification, ReplicationResponse]):
    """Routes each record of an S3 notification to a copy or delete action.

    For every record, in order:

    1. records not emitted by S3 are skipped
    2. records for any bucket other than the configured source bucket are skipped
    3. "ObjectCreated:Put" copies the object to the target bucket
    4. "ObjectRemoved:Delete" deletes the replica from the target bucket
    5. any other event name is logged as unrecognized and skipped

    By default the first failed action stops the invocation and the remaining records
    are not attempted. With `continue_on_error` every record is attempted and the
    invocation fails at the end if any action failed. Either way the relay sees a
    failure and redelivers the notification.

    Attributes:
        client_factory: optional override used by the executor to build scoped clients.
    """

    client_factory: Optional[ClientFactory] = None

    @classmethod
    def deserialize_request(cls, request: JSON) -> ChangeNotification:
        if isinstance(request, (str, bytes)):
            return ChangeNotification.parse(request)
        return ChangeNotification.from_s3_event(request)

    @classmethod
    def deserialize_sqs_record(cls, record: SQSRecord) -> ChangeNotification:
        logger.info(
            f"[{get_sqs_sent_time(record)}] {record.get('eventSource')} "
            f"({record.get('messageId')}) : {record.body}"
        )
        return ChangeNotification.parse(record.body)

    def get_executor(self, config: ReplicationConfig) -> ReplicationExecutor:
        return ReplicationExecutor(config=config, client_factory=self.client_factory)

    def handle(self, request: ChangeNotification) -> ReplicationResponse:
        config = resolve_replication_config()
        executor = self.get_executor(config)

        results: List[RecordResult] = []
        for record in request.records:
            result = self.route_record(record, config, executor)
            results.append(result)

        response = ReplicationResponse(results=results)
        failures = response.failures
        if failures:
            raise ReplicationError(
                f"{len(failures)} of {len(results)} records failed to replicate: "
                f"{[(_.bucket, _.key, _.reason) for _ in failures]}"
            )
        return response

    def route_record(
        self, record: ChangeRecord, config: ReplicationConfig, executor: ReplicationExecutor
    ) -> RecordResult:
        """Apply the routing rules to one record.

        Raises:
            ReplicationError: the action's error, unless `config.continue_on_error` is set,
                in which case the failure is returned as an unsuccessful RecordResult.
        """
        if record.event_source != S3_EVENT_SOURCE:
            return self.skip(record, f"Not an S3 event ({record.event_source})")
        if record.bucket != config.source_bucket:
            return self.skip(record, f"Not interested in bucket {record.bucket}")

        event_type = record.event_type
        if event_type == ChangeEventType.CREATED:
            action = ReplicationAction.COPY
        elif event_type == ChangeEventType.REMOVED:
            action = ReplicationAction.DELETE
        else:
            self.logger.warning(f"Unrecognized event {record.event_name} for {record.key}")
            return self.skip(record, f"Unrecognized event {record.event_name}")

        result = RecordResult(
            bucket=record.bucket, key=record.key, event_name=record.event_name, action=action
        )
        metric_name = action.value.capitalize()
        start = datetime.now()
        try:
            if action == ReplicationAction.COPY:
                self.logger.info(
                    f"Copying file {record.key} from {record.bucket} to {config.target_bucket}"
                )
                copied = executor.copy(record.bucket, record.key)
                result.replica_key = copied.replica_key
                result.size_bytes = copied.size_bytes
                self.metrics.add_duration_metric(start=start, name=metric_name)
                self.logger.info(
                    f"Finished copying file {record.key} from {record.bucket} "
                    f"to {config.target_bucket} as {copied.replica_key}"
                )
            else:
                self.logger.info(f"Deleting copy of {record.key} from {config.target_bucket}")
                result.replica_key = executor.delete(record.key)
                self.logger.info(
                    f"Finished deleting {result.replica_key} from {config.target_bucket}"
                )
        except ReplicationError as e:
            self.metrics.add_failure_metric(metric_name)
            self.logger.error(
                f"{metric_name} error for s3://{record.bucket}/{record.key} "
                f"(target s3://{config.target_bucket}): {e}"
            )
            if not config.continue_on_error:
                raise
            result.success = False
            result.reason = str(e)
            return result

        self.metrics.add_success_metric(metric_name)
        return result

    def skip(self, record: ChangeRecord, reason: str) -> RecordResult:
        self.logger.info(f"Skipping s3://{record.bucket}/{record.key}: {reason}")
        self.metrics.add_count_metric("SkippedRecords", 1)
        return RecordResult(
            bucket=record.bucket,
            key=record.key,
            event_name=record.event_name,
            action=ReplicationAction.SKIP,
            reason=reason,
        )


lambda_handler = ReplicationRouter.get_handler()
sqs_handler = ReplicationRouter.get_sqs_batch_handler()
