import argparse
import os

import uvicorn
from fastapi import FastAPI

from traffic_quota.app import create_app
from traffic_quota.config import ConfigError, load_config
from traffic_quota.logging_config import configure_logging


def build_app_import_string() -> str:
    # Uvicorn calls this factory in each (re)loaded process.
    return "traffic_quota.server:build_app"


def build_app() -> FastAPI:
    configure_logging()
    return create_app(config=load_config())


def main(argv=None) -> None:
    parser = argparse.ArgumentParser(description="Billing-cycle traffic quota server")
    parser.add_argument("--host", default="0.0.0.0", help="Host to bind to")
    parser.add_argument("--port", type=int, default=8000, help="Port to listen on (default: 8000)")
    parser.add_argument("--config", default=None, help="Path to the YAML config (default: $TRAFFIC_QUOTA_CONFIG or config.yml)")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload")
    parser.add_argument("--ssl-only", action="store_true", help="Serve HTTPS only")
    parser.add_argument("--cert", default="cert.pem", help="SSL certificate file")
    parser.add_argument("--key", default="key.pem", help="SSL private key file")

    args = parser.parse_args(argv)

    if args.config:
        os.environ["TRAFFIC_QUOTA_CONFIG"] = args.config

    configure_logging()
    # Validate before starting uvicorn so a bad config never produces a running server.
    try:
        load_config()
    except ConfigError as e:
        raise SystemExit(f"Invalid configuration: {e}")

    ssl_options = {}
    if args.ssl_only:
        if not os.path.exists(args.cert) or not os.path.exists(args.key):
            raise SystemExit(f"SSL certificate files not found: {args.cert}, {args.key}.")
        ssl_options = {"ssl_keyfile": args.key, "ssl_certfile": args.cert}

    uvicorn.run(
        build_app_import_string(),
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
        access_log=True,
        **ssl_options,
    )


if __name__ == "__main__":
    main()
