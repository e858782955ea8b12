import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Dict, Optional, Tuple

from traffic_quota.config import QuotaConfig
from traffic_quota.cycle import local_now, seconds_since_cycle_start
from traffic_quota.prometheus import FetchError, PrometheusClient
from traffic_quota.quota import resolve_limit

logger = logging.getLogger("traffic_quota.usage")


class AggregationError(Exception):
    """A usage report could not be built; the cause is the underlying FetchError."""


@dataclass(frozen=True)
class InstanceUsage:
    value: float
    limit: int

    @property
    def percentage(self) -> float:
        return self.value / self.limit * 100


async def _instance_usage(
    instance: str, config: QuotaConfig, client: PrometheusClient, now: datetime
) -> Tuple[str, Optional[InstanceUsage]]:
    limit = resolve_limit(instance, config)
    window = seconds_since_cycle_start(now, limit.reset_day)
    value = await client.fetch_counter_increase(instance, window)
    if value is None:
        logger.debug(f"No traffic data for {instance} in the last {window}s, skipping")
        return instance, None
    logger.debug(f"{instance}: {value:.0f} of {limit.byte_quota} bytes (window={window}s)")
    return instance, InstanceUsage(value=value, limit=limit.byte_quota)


async def collect_usage(
    config: QuotaConfig, client: PrometheusClient, *, now: Optional[datetime] = None
) -> Dict[str, InstanceUsage]:
    """
    Build the per-instance usage report for the current billing cycles.

    Instances without data are left out. Any backend failure aborts the whole
    report with AggregationError; no partial report is returned.
    """
    if now is None:
        now = local_now(config.timezone)

    try:
        instances = await client.list_instances()
    except FetchError as e:
        logger.error(f"Failed to list instances: {e}")
        raise AggregationError(f"failed to list instances: {e}") from e

    tasks = [
        asyncio.ensure_future(_instance_usage(instance, config, client, now))
        for instance in sorted(instances)
    ]
    try:
        results = await asyncio.gather(*tasks)
    except FetchError as e:
        for task in tasks:
            task.cancel()
        # collect the remaining outcomes so no task exception goes unretrieved
        await asyncio.gather(*tasks, return_exceptions=True)
        logger.error(f"Failed to fetch traffic usage: {e}")
        raise AggregationError(f"failed to fetch traffic usage: {e}") from e

    report = {instance: usage for instance, usage in results if usage is not None}
    logger.info(f"Usage report built for {len(report)} of {len(instances)} instance(s)")
    return report


def to_percentages(report: Dict[str, InstanceUsage]) -> Dict[str, float]:
    return {instance: usage.percentage for instance, usage in report.items()}


async def collect_percentages(
    config: QuotaConfig, client: PrometheusClient, *, now: Optional[datetime] = None
) -> Dict[str, float]:
    return to_percentages(await collect_usage(config, client, now=now))
