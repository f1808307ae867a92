"""Logging utilities for Lambda handlers.

Provides the logging mixin and helpers that wire AWS Lambda Powertools structured
logging into handlers and into the root logger used by non-handler modules.
"""

import logging
from typing import Optional, Union

from aibs_informatics_core.utils.logging import get_all_handlers
from aws_lambda_powertools.logging import Logger

from s3_sync_lambda.common.base import HandlerMixins


class LoggingMixins(HandlerMixins):
    """Mixin class providing a Powertools structured logger.

    Log lines are JSON documents carrying the handler's service name and, once the
    handler is invoked, the Lambda context (request id, function name, cold start).

    Attributes:
        log: Alias for the logger property.
        logger: The AWS Lambda Powertools Logger instance.
    """

    @property
    def log(self) -> Logger:
        """Alias for the logger property.

        Returns:
            The configured Logger instance.
        """
        return self.logger

    @log.setter
    def log(self, value: Logger):
        """Set the logger instance.

        Args:
            value (Logger): The Logger instance to set.
        """
        self.logger = value

    @property
    def logger(self) -> Logger:
        """Get the Logger instance, creating one on first access.

        Returns:
            The Logger for this handler's service name.
        """
        try:
            return self._logger
        except AttributeError:
            self.logger = self.get_logger(self.service_name())
        return self.logger

    @logger.setter
    def logger(self, value: Logger):
        """Set the logger instance.

        Args:
            value (Logger): The Logger instance to set.
        """
        self._logger = value

    @classmethod
    def get_logger(cls, service: Optional[str] = None, add_to_root: bool = False) -> Logger:
        """Create a new Logger instance.

        Args:
            service (Optional[str]): The service name for the logger. If None, uses default.
            add_to_root (bool): Whether to add the logger handler to the root logger.

        Returns:
            A configured Logger instance.
        """
        return get_service_logger(service=service, add_to_root=add_to_root)

    def add_logger_to_root(self):
        """Add this handler's log handler to the root logger.

        Module level loggers (executor, client factory) then emit records in the same
        structured format as the handler itself.
        """
        add_handler_to_logger(self.logger, None)


def get_service_logger(
    service: Optional[str] = None, child: bool = False, add_to_root: bool = False
) -> Logger:
    """Create a service logger with optional root logger integration.

    Args:
        service (Optional[str]): The service name for the logger. If None, uses default.
        child (bool): Whether to create a child logger.
        add_to_root (bool): Whether to add the logger handler to the root logger.

    Returns:
        A configured Logger instance for the service.
    """
    service_logger = Logger(service=service, child=child)
    if add_to_root:
        add_handler_to_logger(service_logger)
    return service_logger


def add_handler_to_logger(
    source_logger: Logger, target_logger: Union[str, logging.Logger, None] = None
):
    """Copy a Powertools logger's handler onto a standard library logger.

    Args:
        source_logger (Logger): The Logger whose handler will be copied.
        target_logger (Union[str, logging.Logger, None]): Logger name, Logger instance,
            or None for the root logger.
    """
    handler = source_logger.registered_handler

    if target_logger is None or isinstance(target_logger, str):
        target_logger = logging.getLogger(target_logger)
        log_level = min(source_logger.log_level, target_logger.getEffectiveLevel())
        target_logger.setLevel(log_level)

    if handler not in get_all_handlers(target_logger):
        target_logger.addHandler(handler)
