"""
AWS adapters for the metrics sink, load source and compute control.

CloudWatch receives the exported metrics and supplies CPU and request
figures; ECS exposes the desired task count as the scaling knob. Clients
are created with short connect/read timeouts so a slow AWS endpoint only
costs the current tick.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

import boto3
from botocore.config import Config
from botocore.exceptions import BotoCoreError, ClientError

from ai_cost_meter.core.capacity import ComputeControl, LoadSample, LoadSource, ServiceRef
from ai_cost_meter.core.errors import InfrastructureError
from ai_cost_meter.core.metrics import MetricDatum, MetricsSink

logger = logging.getLogger(__name__)

DEFAULT_NAMESPACE = "NLP-Tool-App/CostOptimization"
STATISTICS_PERIOD_SECONDS = 300

_AWS_ERRORS = (BotoCoreError, ClientError)


def make_client(service: str, timeout_seconds: float = 2.0, region_name: Optional[str] = None) -> Any:
    """Create a boto3 client with short timeouts and no client-side retries."""
    config = Config(
        connect_timeout=timeout_seconds,
        read_timeout=timeout_seconds,
        retries={"max_attempts": 1},
    )
    return boto3.client(service, region_name=region_name, config=config)


class CloudWatchSink(MetricsSink):
    """Publishes metrics with put_metric_data."""

    def __init__(self, client: Any, namespace: str = DEFAULT_NAMESPACE):
        self.client = client
        self.namespace = namespace

    def put_metrics(self, metrics: List[MetricDatum], dimensions: Optional[Dict[str, str]] = None) -> None:
        timestamp = datetime.now(timezone.utc)
        metric_data = []
        for metric in metrics:
            datum = {
                "MetricName": metric.name,
                "Value": metric.value,
                "Unit": metric.unit,
                "Timestamp": timestamp,
            }
            if dimensions:
                datum["Dimensions"] = [{"Name": k, "Value": v} for k, v in sorted(dimensions.items())]
            metric_data.append(datum)

        try:
            self.client.put_metric_data(Namespace=self.namespace, MetricData=metric_data)
        except _AWS_ERRORS as e:
            raise InfrastructureError(f"put_metric_data failed: {e}", "cloudwatch") from e


class CloudWatchLoadSource(LoadSource):
    """Reads ECS CPU utilization and load balancer request counts."""

    def __init__(self, client: Any, period_seconds: int = STATISTICS_PERIOD_SECONDS):
        self.client = client
        self.period_seconds = period_seconds

    def get_load(self, service_ref: ServiceRef, window_minutes: int) -> LoadSample:
        end_time = datetime.now(timezone.utc)
        start_time = end_time - timedelta(minutes=window_minutes)

        try:
            cpu = self.client.get_metric_statistics(
                Namespace="AWS/ECS",
                MetricName="CPUUtilization",
                Dimensions=[
                    {"Name": "ServiceName", "Value": service_ref.service},
                    {"Name": "ClusterName", "Value": service_ref.cluster},
                ],
                StartTime=start_time,
                EndTime=end_time,
                Period=self.period_seconds,
                Statistics=["Average"],
            )
            requests = self.client.get_metric_statistics(
                Namespace="AWS/ApplicationELB",
                MetricName="RequestCount",
                StartTime=start_time,
                EndTime=end_time,
                Period=self.period_seconds,
                Statistics=["Sum"],
            )
        except _AWS_ERRORS as e:
            raise InfrastructureError(f"get_metric_statistics failed: {e}", "cloudwatch") from e

        cpu_points = cpu.get("Datapoints", [])
        avg_cpu = sum(p["Average"] for p in cpu_points) / len(cpu_points) if cpu_points else 0.0
        total_requests = sum(p["Sum"] for p in requests.get("Datapoints", []))
        return LoadSample(avg_cpu=avg_cpu, total_requests=total_requests)


class EcsComputeControl(ComputeControl):
    """Reads and sets the desired task count of an ECS service."""

    def __init__(self, client: Any):
        self.client = client

    def get_current_desired_count(self, service_ref: ServiceRef) -> int:
        try:
            response = self.client.describe_services(
                cluster=service_ref.cluster,
                services=[service_ref.service],
            )
        except _AWS_ERRORS as e:
            raise InfrastructureError(f"describe_services failed for {service_ref}: {e}", "ecs") from e

        services = response.get("services", [])
        if not services:
            raise InfrastructureError(f"Service not found: {service_ref}", "ecs")

        service = services[0]
        logger.debug(
            "ECS %s desired=%s running=%s",
            service_ref, service.get("desiredCount"), service.get("runningCount"),
        )
        return int(service["desiredCount"])

    def set_desired_count(self, service_ref: ServiceRef, count: int) -> None:
        try:
            self.client.update_service(
                cluster=service_ref.cluster,
                service=service_ref.service,
                desiredCount=count,
            )
        except _AWS_ERRORS as e:
            raise InfrastructureError(f"update_service failed for {service_ref}: {e}", "ecs") from e
