import logging
from typing import Any, Iterable, Optional, Set

import httpx

# Label value of the exporter that monitors the metrics backend itself. It is
# not a billable host and never shows up in reports.
SELF_MONITORING_INSTANCE = "Node Exporter"

RECEIVE_COUNTER = "node_network_receive_bytes_total"
TRANSMIT_COUNTER = "node_network_transmit_bytes_total"


class FetchError(Exception):
    """Network failure, non-2xx status or malformed body from the metrics backend."""

    def __init__(self, message: str, *, url: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.url = url
        self.status_code = status_code


def _escape_label_value(value: str) -> str:
    return value.replace("\\", "\\\\").replace('"', '\\"')


def build_increase_query(instance: str, window_seconds: int, label: str = "instance") -> str:
    """PromQL for the summed receive + transmit byte increase of one instance."""
    selector = f'{{{label}="{_escape_label_value(instance)}"}}'
    # Prometheus rejects zero-length ranges, which occur right at a reset midnight.
    window = f"[{max(1, int(window_seconds))}s]"
    return (
        f"sum(increase({RECEIVE_COUNTER}{selector}{window})"
        f" + increase({TRANSMIT_COUNTER}{selector}{window}))"
    )


def _sample_value(raw: Any) -> float:
    # Prometheus encodes sample values as strings ("123.4", "NaN", "+Inf")
    if isinstance(raw, bool):
        raise ValueError(f"not a sample value: {raw!r}")
    return float(raw)


class PrometheusClient:
    """
    Minimal async client for a Prometheus-compatible HTTP API.

    Holds only the underlying connection pool; every call hits the backend.
    """

    def __init__(
        self,
        base_url: str,
        *,
        instance_label: str = "instance",
        excluded_instances: Iterable[str] = (),
        timeout: float = 10.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.instance_label = instance_label
        self.excluded_instances = {SELF_MONITORING_INSTANCE, *excluded_instances}
        self.logger = logging.getLogger("traffic_quota.prometheus")
        self._client = httpx.AsyncClient(timeout=timeout, transport=transport)

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.aclose()
        return False

    async def aclose(self) -> None:
        await self._client.aclose()

    async def _get_json(self, path: str, params: Optional[dict] = None) -> Any:
        url = f"{self.base_url}{path}"
        try:
            r = await self._client.get(url, params=params)
        except httpx.TimeoutException as e:
            self.logger.error(f"Metrics backend timed out: {url}")
            raise FetchError(f"timeout querying {url}", url=url) from e
        except httpx.HTTPError as e:
            self.logger.error(f"Metrics backend request failed: {url} - {e}")
            raise FetchError(f"request to {url} failed: {e}", url=url) from e

        if not r.is_success:
            self.logger.error(f"Metrics backend error response: {r.status_code} - {r.text}")
            raise FetchError(
                f"backend returned HTTP {r.status_code} for {url}",
                url=url,
                status_code=r.status_code,
            )

        try:
            return r.json()
        except ValueError as e:
            self.logger.error(f"Metrics backend returned invalid JSON from {url}")
            raise FetchError(f"invalid JSON from {url}", url=url, status_code=r.status_code) from e

    async def list_instances(self) -> Set[str]:
        path = f"/api/v1/label/{self.instance_label}/values"
        payload = await self._get_json(path)
        try:
            values = payload["data"]
            if not isinstance(values, list):
                raise TypeError("data is not a list")
            instances = {str(v) for v in values}
        except (KeyError, TypeError) as e:
            raise FetchError(f"malformed label values response: {e}", url=f"{self.base_url}{path}") from e

        instances -= self.excluded_instances
        self.logger.debug(f"Found {len(instances)} instance(s) for label {self.instance_label!r}")
        return instances

    async def fetch_counter_increase(self, instance: str, window_seconds: int) -> Optional[float]:
        """Traffic bytes for ``instance`` over the last ``window_seconds``.

        Returns None when the backend has no samples for the instance.
        """
        query = build_increase_query(instance, window_seconds, self.instance_label)
        payload = await self._get_json("/api/v1/query", params={"query": query})
        try:
            result = payload["data"]["result"]
            if not result:
                return None
            return _sample_value(result[0]["value"][1])
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise FetchError(
                f"malformed query response for {instance}: {e}", url=f"{self.base_url}/api/v1/query"
            ) from e
