import logging
from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException
from fastapi.responses import PlainTextResponse

from traffic_quota.config import QuotaConfig
from traffic_quota.prometheus import PrometheusClient
from traffic_quota.usage import AggregationError, collect_percentages, collect_usage


def create_app(*, config: QuotaConfig, transport: Optional[httpx.AsyncBaseTransport] = None) -> FastAPI:
    logger = logging.getLogger("traffic_quota")
    client: Optional[PrometheusClient] = None

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal client
        logger.info("Starting traffic quota server")
        logger.info(f"Prometheus URL: {config.prometheus_url}")
        logger.info(f"Unit type: {config.unit_convention.value}")
        logger.info(f"Instance label: {config.instance_label}")
        logger.info(f"Configured limits: {len(config.limits)}")
        if not config.limits:
            logger.warning("⚠️  No limits configured - every instance uses the fallback quota")

        client = PrometheusClient(
            config.prometheus_url,
            instance_label=config.instance_label,
            excluded_instances=config.excluded_instances,
            timeout=config.request_timeout,
            transport=transport,
        )
        try:
            yield
        finally:
            await client.aclose()
            client = None
            logger.info("Shutting down traffic quota server")

    app = FastAPI(title="Traffic Quota", version="1.0.0", lifespan=lifespan)

    async def _collect(collect):
        if client is None:
            raise HTTPException(status_code=503, detail="Service is not ready")
        try:
            return await collect(config, client)
        except AggregationError as e:
            raise HTTPException(status_code=502, detail=f"Metrics backend error: {e}")

    @app.get("/", response_class=PlainTextResponse)
    async def index():
        return "Hello, world!"

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "Traffic Quota",
            "prometheus_url": config.prometheus_url,
            "unit_type": config.unit_convention.value,
            "configured_instances": len(config.limits),
        }

    @app.get("/get/raw")
    async def get_raw():
        report = await _collect(collect_usage)
        return {instance: {"value": usage.value, "limit": usage.limit} for instance, usage in report.items()}

    @app.get("/get/percentage")
    async def get_percentage():
        return await _collect(collect_percentages)

    # Route name kept for existing dashboards.
    app.add_api_route("/get/precentage", get_percentage, methods=["GET"], include_in_schema=False)

    return app
