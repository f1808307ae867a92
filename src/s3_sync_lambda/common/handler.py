import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Generic, Optional, TypeVar, Union, cast

from aibs_informatics_core.executors.base import BaseExecutor
from aibs_informatics_core.models.base import ModelProtocol
from aibs_informatics_core.utils.json import JSON
from aws_lambda_powertools.utilities.batch import (
    BatchProcessor,
    EventType,
    process_partial_response,
)
from aws_lambda_powertools.utilities.batch.types import PartialItemFailureResponse
from aws_lambda_powertools.utilities.data_classes.sqs_event import SQSRecord
from aws_lambda_powertools.utilities.typing import LambdaContext

from s3_sync_lambda.common.base import HandlerMixins
from s3_sync_lambda.common.logging import LoggingMixins
from s3_sync_lambda.common.metrics import MetricsMixins

LambdaEvent = Union[JSON]  # type: ignore # https://github.com/python/mypy/issues/7866
LambdaHandlerType = Callable[[LambdaEvent, LambdaContext], Optional[JSON]]

REQUEST = TypeVar("REQUEST", bound=ModelProtocol)
RESPONSE = TypeVar("RESPONSE", bound=ModelProtocol)


@dataclass  # type: ignore[misc] # mypy #5374
class LambdaHandler(
    LoggingMixins,
    MetricsMixins,
    HandlerMixins,
    BaseExecutor[REQUEST, RESPONSE],
    Generic[REQUEST, RESPONSE],
):
    """Base class for strongly-typed AWS Lambda handlers.

    Subclasses implement `handle`, which takes a REQUEST model and returns a RESPONSE
    model (both following `ModelProtocol`). The class methods build the callables that
    the Lambda runtime invokes:

    - `get_handler`: a direct invocation, the event is the request.
    - `get_sqs_batch_handler`: an SQS event source, each record body is one request and
      failed records are reported back as partial batch failures for redelivery.

    Example:
        ```python
        class MyHandler(LambdaHandler[MyRequest, MyResponse]):
            def handle(self, request: MyRequest) -> MyResponse:
                return MyResponse(message=f"Hello, {request.name}!")

        handler = MyHandler.get_handler()
        ```
    """

    def __post_init__(self):
        self.context = LambdaContext()
        super().__post_init__()

    # --------------------------------------------------------------------
    # Handler provider methods
    # --------------------------------------------------------------------

    @classmethod
    def get_handler(cls, *args, **kwargs) -> LambdaHandlerType:
        """Create a Lambda handler function for this handler class.

        The returned function injects the Lambda context into the logger, instantiates
        the handler class, deserializes the event, calls `handle` and serializes the
        response (if any). Metrics recorded during the invocation are flushed on return.

        Args:
            *args: Positional arguments passed to the handler constructor.
            **kwargs: Keyword arguments passed to the handler constructor.
        """

        logger = cls.get_logger(service=cls.service_name(), add_to_root=False)
        metrics = cls.get_metrics(service=cls.service_name())

        @logger.inject_lambda_context(log_event=True)
        @metrics.log_metrics
        def handler(event: LambdaEvent, context: LambdaContext) -> Optional[JSON]:
            lambda_handler = cls(*args, **kwargs)  # type: ignore[call-arg]
            logger.info(f"Instantiated {lambda_handler}.")
            lambda_handler.log = logger
            lambda_handler.metrics = metrics
            lambda_handler.context = context
            lambda_handler.add_logger_to_root()

            lambda_handler.log.info(f"Deserializing event: {event}")

            request = lambda_handler.deserialize_request(event)

            lambda_handler.log.info("Event successfully deserialized. Calling handler...")
            response = lambda_handler.handle(request=request)

            lambda_handler.log.info(
                f"Handler completed and returned following response: {response}"
            )
            if response:
                lambda_handler.log.info("Serializing response")
                return lambda_handler.serialize_response(response)

            return None

        return handler

    @classmethod
    def should_process_sqs_record(cls, record: SQSRecord) -> bool:
        """Filter for whether to handle an SQS Record.

        This is invoked prior to deserializing and handling that SQS message.

        Args:
            record (SQSRecord): An SQS record

        Returns:
            bool: True if handler should process request
        """
        return True

    @classmethod
    def deserialize_sqs_record(cls, record: SQSRecord) -> REQUEST:
        """Deserialize an SQS Record into the Request object of this handler

        By default, the "body" of the SQS record is loaded as JSON and passed to
        `deserialize_request`.

        Args:
            record (SQSRecord): An SQS record

        Returns:
            REQUEST: The expected Request object for this handler class
        """
        return cls.deserialize_request(json.loads(record["body"]))

    @classmethod
    def get_sqs_batch_handler(cls, *args, **kwargs) -> LambdaHandlerType:
        """Create a handler for processing a batch of SQS records.

        Each record is handled by a fresh handler instance. Records that raise are
        reported in `batchItemFailures` so that only they are redelivered.

        See Also:
            https://docs.powertools.aws.dev/lambda/python/latest/utilities/batch/

        Args:
            *args: Positional arguments passed to the handler constructor.
            **kwargs: Keyword arguments passed to the handler constructor.
        """
        processor = BatchProcessor(event_type=EventType.SQS)
        logger = cls.get_logger(cls.service_name())
        metrics = cls.get_metrics(service=cls.service_name())

        # Create a record handler for each record in batch.
        def record_handler(record: SQSRecord) -> Optional[JSON]:
            if not cls.should_process_sqs_record(record):
                logger.info(f"SQS record {record} elected not to be processed.")
                return None
            lambda_handler = cls(*args, **kwargs)  # type: ignore[call-arg]
            lambda_handler.log = logger
            lambda_handler.metrics = metrics
            lambda_handler.add_logger_to_root()

            request = lambda_handler.deserialize_sqs_record(record)
            response = lambda_handler.handle(request=request)
            if response:
                lambda_handler.log.info("Sending Response")
                return lambda_handler.serialize_response(response)
            lambda_handler.log.info("Not sending Response")
            return None

        # Now create top-level handler
        @logger.inject_lambda_context(log_event=True)
        @metrics.log_metrics
        def handler(event: dict, context: LambdaContext) -> PartialItemFailureResponse:
            return process_partial_response(
                event=event,
                record_handler=record_handler,
                processor=processor,
                context=context,
            )

        return cast(LambdaHandlerType, handler)

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"request: {self.get_request_cls()}, "
            f"response: {self.get_response_cls()}"
            ")"
        )


def get_sqs_sent_time(record: SQSRecord) -> Optional[str]:
    """ISO-8601 time at which SQS received the message, if the record carries it."""
    sent_timestamp = (record.get("attributes") or {}).get("SentTimestamp")
    if not sent_timestamp:
        return None
    return datetime.fromtimestamp(int(sent_timestamp) / 1000, tz=timezone.utc).isoformat()
