"""Replication data models.

Defines the parsed notification (`ChangeNotification` of `ChangeRecord`s) and the
per-record results returned by the replication router.
"""

__all__ = [
    "S3_EVENT_SOURCE",
    "ChangeEventType",
    "ChangeRecord",
    "ChangeNotification",
    "ReplicationAction",
    "RecordResult",
    "ReplicationResponse",
]

import json
from dataclasses import dataclass
from enum import Enum
from typing import Any, List, Optional, Union
from urllib.parse import unquote_plus

from aibs_informatics_core.models.base import (
    BooleanField,
    EnumField,
    IntegerField,
    ListField,
    SchemaModel,
    StringField,
    custom_field,
)
from aws_lambda_powertools.utilities.data_classes import S3Event
from aws_lambda_powertools.utilities.data_classes.s3_event import S3EventRecord

from s3_sync_lambda.handlers.replication.errors import ParseError

S3_EVENT_SOURCE = "aws:s3"
"""Event source tag of records emitted by S3 event notifications."""

S3_TEST_EVENT = "s3:TestEvent"
"""Event sent by S3 when a notification configuration is created. Carries no records."""


class ChangeEventType(str, Enum):
    """Interpretation of a record's event name.

    Attributes:
        CREATED: a single object was put.
        REMOVED: a single object was deleted.
        UNRECOGNIZED: anything else, logged and skipped.
    """

    CREATED = "ObjectCreated:Put"
    REMOVED = "ObjectRemoved:Delete"
    UNRECOGNIZED = "unrecognized"

    @classmethod
    def from_event_name(cls, event_name: str) -> "ChangeEventType":
        if event_name == cls.CREATED.value:
            return cls.CREATED
        if event_name == cls.REMOVED.value:
            return cls.REMOVED
        return cls.UNRECOGNIZED


@dataclass
class ChangeRecord(SchemaModel):
    """One create/delete event for one object.

    Records emitted by other origins carry only their source, name, region and time.
    They are skipped by routing, so their payload is never inspected.

    Attributes:
        event_source: origin system tag ("aws:s3" for S3 notifications).
        event_name: e.g. "ObjectCreated:Put".
        bucket: name of the bucket the object lives in (S3 records only).
        key: object key, URL-decoded (S3 records only).
        aws_region: region of the bucket.
        event_time: RFC3339 timestamp of the event.
        size: object size in bytes (absent on removal events).
        etag: object content digest (absent on removal events).
        sequencer: opaque token ordering events for the same key.
    """

    event_source: str = custom_field(mm_field=StringField())
    event_name: str = custom_field(mm_field=StringField())
    bucket: Optional[str] = custom_field(default=None, mm_field=StringField())
    key: Optional[str] = custom_field(default=None, mm_field=StringField())
    aws_region: Optional[str] = custom_field(default=None, mm_field=StringField())
    event_time: Optional[str] = custom_field(default=None, mm_field=StringField())
    size: Optional[int] = custom_field(default=None, mm_field=IntegerField())
    etag: Optional[str] = custom_field(default=None, mm_field=StringField())
    sequencer: Optional[str] = custom_field(default=None, mm_field=StringField())

    @property
    def event_type(self) -> ChangeEventType:
        return ChangeEventType.from_event_name(self.event_name)

    @classmethod
    def from_s3_event_record(cls, record: S3EventRecord) -> "ChangeRecord":
        """Build a change record from one entry of a notification's "Records".

        Object keys arrive URL-encoded ("+" for spaces) and are decoded here.

        Raises:
            KeyError: if an S3 record has no bucket name or object key.
        """
        event_source = record.get("eventSource") or ""
        event_name = record.get("eventName") or ""
        if event_source != S3_EVENT_SOURCE:
            return cls(
                event_source=event_source,
                event_name=event_name,
                aws_region=record.get("awsRegion"),
                event_time=record.get("eventTime"),
            )

        s3_object = record.s3.get_object
        size = s3_object.get("size")
        return cls(
            event_source=event_source,
            event_name=event_name,
            bucket=record.s3.bucket.name,
            key=unquote_plus(s3_object["key"]),
            aws_region=record.get("awsRegion"),
            event_time=record.get("eventTime"),
            size=int(size) if size is not None else None,
            etag=s3_object.get("eTag"),
            sequencer=s3_object.get("sequencer"),
        )


@dataclass
class ChangeNotification(SchemaModel):
    records: List[ChangeRecord] = custom_field(
        default_factory=list, mm_field=ListField(ChangeRecord.as_mm_field())
    )

    @classmethod
    def parse(cls, body: Union[str, bytes]) -> "ChangeNotification":
        """Decode a delivered message body into a notification.

        Args:
            body (Union[str, bytes]): UTF-8 JSON S3 event notification document.

        Raises:
            ParseError: if the body is not UTF-8 JSON or not an S3 event document.
        """
        try:
            if isinstance(body, bytes):
                body = body.decode("utf-8")
            document = json.loads(body)
        except ValueError as e:
            raise ParseError(f"Notification body is not a valid JSON document: {e}") from e
        return cls.from_s3_event(document)

    @classmethod
    def from_s3_event(cls, document: Any) -> "ChangeNotification":
        """Build a notification from an already decoded S3 event document.

        Fields not used by replication are ignored.

        Raises:
            ParseError: if the document does not have the S3 event notification shape.
        """
        if not isinstance(document, dict):
            raise ParseError(f"Expected a JSON object, got {type(document).__name__}")
        if "Records" not in document:
            if document.get("Event") == S3_TEST_EVENT:
                return cls(records=[])
            raise ParseError(f"Notification document has no 'Records': {document}")
        try:
            records = [ChangeRecord.from_s3_event_record(_) for _ in S3Event(document).records]
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Malformed S3 event record ({type(e).__name__}: {e})") from e
        return cls(records=records)


class ReplicationAction(str, Enum):
    COPY = "copy"
    DELETE = "delete"
    SKIP = "skip"


@dataclass
class RecordResult(SchemaModel):
    """Outcome of routing one record.

    Attributes:
        event_name: the record's event name.
        action: what the router did with the record.
        bucket: bucket named by the record, if any.
        key: key named by the record, if any.
        success: False only if a copy/delete was attempted and failed.
        replica_key: key written to / removed from the target bucket.
        size_bytes: bytes transferred by a copy.
        reason: why a record was skipped, or the error of a failed action.
    """

    event_name: str = custom_field(mm_field=StringField())
    action: ReplicationAction = custom_field(mm_field=EnumField(ReplicationAction))
    bucket: Optional[str] = custom_field(default=None, mm_field=StringField())
    key: Optional[str] = custom_field(default=None, mm_field=StringField())
    success: bool = custom_field(default=True, mm_field=BooleanField())
    replica_key: Optional[str] = custom_field(default=None, mm_field=StringField())
    size_bytes: Optional[int] = custom_field(default=None, mm_field=IntegerField())
    reason: Optional[str] = custom_field(default=None, mm_field=StringField())


@dataclass
class ReplicationResponse(SchemaModel):
    results: List[RecordResult] = custom_field(
        default_factory=list, mm_field=ListField(RecordResult.as_mm_field())
    )

    @property
    def failures(self) -> List[RecordResult]:
        return [_ for _ in self.results if not _.success]
