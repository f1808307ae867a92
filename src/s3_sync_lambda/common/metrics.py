"""Metrics utilities for Lambda handlers.

Records replication outcomes as CloudWatch embedded metrics using AWS Lambda Powertools.
"""

from datetime import datetime
from typing import Optional

from aws_lambda_powertools.metrics import Metrics, MetricUnit

from s3_sync_lambda.common.base import HandlerMixins

METRICS_NAMESPACE = "S3Sync"


class EnhancedMetrics(Metrics):
    """Metrics collector with helpers for count, duration and outcome metrics."""

    def add_count_metric(self, name: str, value: float):
        self.add_metric(name=name, unit=MetricUnit.Count, value=value)

    def add_duration_metric(self, start: datetime, end: Optional[datetime] = None, name: str = ""):
        """Add a '{name}Duration' metric in milliseconds.

        Args:
            start (datetime): The start timestamp.
            end (Optional[datetime]): The end timestamp. Defaults to current time.
            name (str): Prefix for the metric name.
        """
        end = end or datetime.now(start.tzinfo)
        self.add_metric(
            name=f"{name}Duration",
            unit=MetricUnit.Milliseconds,
            value=(end - start).total_seconds() * 1000,
        )

    def add_success_metric(self, name: str = ""):
        self.add_metric(name=f"{name}Success", unit=MetricUnit.Count, value=1)
        self.add_metric(name=f"{name}Failure", unit=MetricUnit.Count, value=0)

    def add_failure_metric(self, name: str = ""):
        self.add_metric(name=f"{name}Success", unit=MetricUnit.Count, value=0)
        self.add_metric(name=f"{name}Failure", unit=MetricUnit.Count, value=1)


class MetricsMixins(HandlerMixins):
    """Mixin class providing a CloudWatch metrics collector."""

    @property
    def metrics(self) -> EnhancedMetrics:
        try:
            return self._metrics
        except AttributeError:
            self.metrics = self.get_metrics(service=self.service_name())
        return self.metrics

    @metrics.setter
    def metrics(self, value: EnhancedMetrics):
        self._metrics = value

    @classmethod
    def get_metrics(
        cls,
        service: Optional[str] = None,
        namespace: Optional[str] = METRICS_NAMESPACE,
        **additional_dimensions: str,
    ) -> EnhancedMetrics:
        """Create a new EnhancedMetrics instance.

        Args:
            service (Optional[str]): The service name for metrics.
            namespace (Optional[str]): The CloudWatch namespace.
            **additional_dimensions (str): Additional metric dimensions as key-value pairs.
        """
        metrics = EnhancedMetrics(service=service, namespace=namespace)
        for dimension_name, dimension_value in additional_dimensions.items():
            metrics.add_dimension(name=dimension_name, value=dimension_value)
        return metrics
