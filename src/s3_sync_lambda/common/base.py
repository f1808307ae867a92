"""Base mixins shared by every s3-sync Lambda handler."""

from aws_lambda_powertools.utilities.typing import LambdaContext

CONTEXT_ATTR = "_context"

SERVICE_NAME = "s3-sync"


class HandlerMixins:
    """Mixin class giving handlers access to the Lambda context and naming helpers.

    The service name derived here is shared by the handler's logger and its metrics
    dimension, so log lines and metrics for one handler can be correlated.

    Attributes:
        context: The AWS Lambda context object for the current invocation.
    """

    @property
    def context(self) -> LambdaContext:
        """Get the Lambda context for the current invocation.

        Returns:
            The AWS Lambda context object.

        Raises:
            ValueError: If context has not been set.
        """
        if not hasattr(self, CONTEXT_ATTR):
            raise ValueError(f"No Lambda context set on {self.__class__.__name__}")
        return getattr(self, CONTEXT_ATTR)

    @context.setter
    def context(self, value: LambdaContext):
        """Set the Lambda context for the current invocation.

        Args:
            value (LambdaContext): The AWS Lambda context object to set.
        """
        setattr(self, CONTEXT_ATTR, value)

    @classmethod
    def handler_name(cls) -> str:
        """Get the name of this handler class.

        Returns:
            The class name as a string.
        """
        return cls.__name__

    @classmethod
    def service_name(cls) -> str:
        """Get the service name used for logging and metrics.

        Returns:
            "<SERVICE_NAME>.<handler class name>", e.g. "s3-sync.ReplicationRouter".
        """
        return f"{SERVICE_NAME}.{cls.__name__}"
