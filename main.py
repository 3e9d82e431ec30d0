#!/usr/bin/env python3
"""
Multiauth API server.

Runs the FastAPI app with uvicorn.
"""

import argparse
import logging
import os

import uvicorn

logger = logging.getLogger(__name__)


def main():
    parser = argparse.ArgumentParser(description="Run the multiauth API server")
    parser.add_argument("--host", default=os.getenv("API_HOST", "0.0.0.0"), help="Bind address")
    parser.add_argument("--port", type=int, default=int(os.getenv("API_PORT", "8000")), help="Bind port")
    parser.add_argument("--reload", action="store_true", help="Reload on code changes (development)")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
    )

    logger.info(f"Starting multiauth API on {args.host}:{args.port}...")
    logger.info("Auth endpoints: /api/v1/auth/{register,login,challenge,confirm}/{strategy}")
    logger.info("Health endpoint: GET /health")

    uvicorn.run("api.main:app", host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":
    main()
