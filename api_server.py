"""
FastAPI Server for the StableRoute transfer service
Wires explicit service objects onto the app and maps error kinds to HTTP responses
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker

from config import Config
from routes.balance_routes import router as balance_router
from routes.chain_routes import router as chain_router
from routes.transfer_routes import router as transfer_router
from services.app_services import build_services
from services.cost_oracle import CostOracle
from services.settlement_executor import SettlementExecutor
from utils.exceptions import ErrorKind, StableRouteError

logger = logging.getLogger(__name__)

STATUS_BY_KIND = {
    ErrorKind.INVALID_AMOUNT: 400,
    ErrorKind.INVALID_REQUEST: 400,
    ErrorKind.INSUFFICIENT_BALANCE: 400,
    ErrorKind.NO_BALANCES: 503,
    ErrorKind.NO_ELIGIBLE_CHAINS: 503,
    ErrorKind.NO_VIABLE_ROUTE: 503,
    ErrorKind.SETTLEMENT_FAILED: 502,
    ErrorKind.LEDGER_CONFLICT: 409,
    ErrorKind.NOT_FOUND: 404,
}


async def handle_service_error(request: Request, exc: StableRouteError):
    """Callers get the error kind and message only"""
    status_code = STATUS_BY_KIND.get(exc.kind, 400)
    logger.warning(f"⚠️ REQUEST_FAILED: {request.method} {request.url.path} → {status_code} {exc.kind.value}")
    return JSONResponse(status_code=status_code, content=exc.to_dict())


def create_app(
    session_factory: Optional[sessionmaker] = None,
    bind: Optional[Engine] = None,
    cost_oracle: Optional[CostOracle] = None,
    settlement: Optional[SettlementExecutor] = None,
    settlement_timeout_seconds: Optional[float] = None,
) -> FastAPI:
    if session_factory is None:
        from database import SessionLocal, engine
        session_factory = SessionLocal
        bind = bind or engine

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup: make sure the schema exists before taking requests
        if bind is not None:
            from database import check_connection, create_tables
            create_tables(bind)
            check_connection(bind)
        if not Config.validate_routing_configuration():
            raise RuntimeError("Route scoring weights must be non-negative")
        Config.log_environment_config()
        logger.info("✅ StableRoute API ready")
        yield
        logger.info("🔄 StableRoute API shutting down...")

    app = FastAPI(
        title="StableRoute Routing Engine",
        description="Routes stable-value transfers optimally across multiple chains",
        version="1.0.0",
        lifespan=lifespan,
    )
    app.state.services = build_services(
        session_factory,
        cost_oracle=cost_oracle,
        settlement=settlement,
        settlement_timeout_seconds=settlement_timeout_seconds,
    )
    app.add_exception_handler(StableRouteError, handle_service_error)

    app.include_router(chain_router)
    app.include_router(balance_router)
    app.include_router(transfer_router)

    @app.get("/")
    async def root():
        """Root endpoint"""
        return {
            "title": "StableRoute Routing Engine",
            "version": "1.0.0",
            "description": "API for routing stable-value transfers optimally across multiple chains",
        }

    @app.get("/health")
    async def health_check():
        return {"status": "ok"}

    return app


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=Config.LOG_LEVEL,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
    uvicorn.run(create_app(), host=Config.API_HOST, port=Config.API_PORT)
