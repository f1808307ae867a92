"""Notification logger.

Logs every message delivered by the notification queue, with its delivery metadata,
and takes no other action. Useful to inspect what the relay delivers before pointing
it at the replication handler.
"""

from dataclasses import dataclass
from typing import Optional

from aibs_informatics_core.models.base import SchemaModel, StringField, custom_field
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord

from s3_sync_lambda.common.handler import LambdaHandler, get_sqs_sent_time


@dataclass
class DeliveredMessage(SchemaModel):
    body: str = custom_field(mm_field=StringField())
    message_id: Optional[str] = custom_field(default=None, mm_field=StringField())
    event_source: Optional[str] = custom_field(default=None, mm_field=StringField())
    sent_time: Optional[str] = custom_field(default=None, mm_field=StringField())

    @classmethod
    def from_sqs_record(cls, record: SQSRecord) -> "DeliveredMessage":
        return cls(
            body=record.body,
            message_id=record.get("messageId"),
            event_source=record.get("eventSource"),
            sent_time=get_sqs_sent_time(record),
        )


class EventLoggerHandler(LambdaHandler[DeliveredMessage, DeliveredMessage]):
    @classmethod
    def deserialize_sqs_record(cls, record: SQSRecord) -> DeliveredMessage:
        return DeliveredMessage.from_sqs_record(record)

    def handle(self, request: DeliveredMessage) -> None:
        self.logger.info(f"[{request.sent_time}] {request.event_source} : {request.body}")


sqs_handler = EventLoggerHandler.get_sqs_batch_handler()
