# surety_oracle/server.py
"""
Flight Surety Oracle Server

Runs the oracle service behind a small FastAPI app used for supervision.

Endpoints:
  GET /health    service phase, oracle count, listener state
  GET /api       banner for the dApp
  GET /oracles   registered oracle accounts and their indexes

Usage:
  python3 -m surety_oracle.server                 # port from SURETY_PORT or 3000
  python3 -m surety_oracle.server --port 3001
"""

import argparse
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.responses import JSONResponse
import uvicorn

from surety_oracle import __version__
from surety_oracle.config import ConfigError, load_settings
from surety_oracle.ledger import LedgerClient, load_abi
from surety_oracle.service import OracleService

log = logging.getLogger("surety.server")


def _report_startup(task):
    if not task.cancelled() and task.exception() is not None:
        log.error(f"Oracle service failed to start: {task.exception()!r}")


def create_app(service=None) -> FastAPI:
    @asynccontextmanager
    async def lifespan(app):
        startup = None
        if service is not None:
            startup = asyncio.create_task(service.start())
            startup.add_done_callback(_report_startup)
        yield
        if service is not None:
            if not startup.done():
                startup.cancel()
            await service.stop()

    app = FastAPI(title="Flight Surety Oracles", version=__version__, lifespan=lifespan)
    app.state.service = service

    @app.get("/health")
    def health():
        body = {"status": "ok", "service": "surety-oracle", "version": __version__}
        if service is not None:
            body.update(service.health())
            if body["phase"] == "failed":
                body["status"] = "degraded"
        return body

    @app.get("/api")
    def api():
        return {"message": "An API for use with your Dapp!"}

    @app.get("/oracles")
    def oracles():
        if service is None:
            return JSONResponse({"error": "service not running"}, status_code=503)
        snapshot = service.registry.snapshot()
        return {"count": len(snapshot), "oracles": snapshot}

    return app


def main(argv=None):
    parser = argparse.ArgumentParser(description="Flight Surety oracle server")
    parser.add_argument("--port", type=int, default=None, help="Health server port")
    parser.add_argument("--host", default="0.0.0.0")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
    )

    try:
        settings = load_settings()
    except ConfigError as e:
        log.error(f"Configuration error: {e}")
        raise SystemExit(1)

    ledger = LedgerClient(
        settings.rpc_url,
        settings.app_address,
        abi=load_abi(settings.abi_path),
    )
    service = OracleService(settings, ledger)
    port = args.port or settings.port

    log.info(f"Flight Surety oracles v{__version__} starting on :{port}")
    log.info(f"  Network:  {settings.network} ({settings.rpc_url})")
    log.info(f"  App:      {settings.app_address}")
    log.info(f"  Oracles:  {settings.oracle_count} accounts from #{settings.oracle_offset}")
    uvicorn.run(create_app(service), host=args.host, port=port)


if __name__ == "__main__":
    main()
