"""Configuration management for the StableRoute transfer service"""

import os
import logging
from decimal import Decimal, InvalidOperation

logger = logging.getLogger(__name__)


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower().strip() in ("1", "true", "yes", "on")


def _env_decimal(name: str, default: str) -> Decimal:
    raw = os.getenv(name, default)
    try:
        return Decimal(raw)
    except (InvalidOperation, TypeError):
        logger.warning(f"⚠️ CONFIG: Invalid decimal for {name}={raw!r}, using default {default}")
        return Decimal(default)


class Config:
    """Application configuration"""

    ENVIRONMENT = os.getenv("ENVIRONMENT", "development").lower().strip()
    IS_PRODUCTION = ENVIRONMENT == "production"

    # Database
    DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./stableroute.db")
    SQL_ECHO = _env_bool("SQL_ECHO")

    # Route scoring policy: lower score wins, fee weighted over latency
    ROUTE_FEE_WEIGHT = _env_decimal("ROUTE_FEE_WEIGHT", "0.7")
    ROUTE_TIME_WEIGHT = _env_decimal("ROUTE_TIME_WEIGHT", "0.3")

    # Ledger locking (PostgreSQL SET LOCAL lock_timeout)
    LOCK_TIMEOUT_SECONDS = int(os.getenv("LOCK_TIMEOUT_SECONDS", "30"))

    # Settlement calls; 0 disables the timeout
    SETTLEMENT_TIMEOUT_SECONDS = float(os.getenv("SETTLEMENT_TIMEOUT_SECONDS", "0"))

    # Simulated collaborators
    ORACLE_VARIANCE_ENABLED = _env_bool("ORACLE_VARIANCE_ENABLED", "true")
    SIMULATED_SETTLEMENT_MIN_MS = int(os.getenv("SIMULATED_SETTLEMENT_MIN_MS", "300"))
    SIMULATED_SETTLEMENT_MAX_MS = int(os.getenv("SIMULATED_SETTLEMENT_MAX_MS", "1200"))
    SIMULATED_SETTLEMENT_SLEEP = _env_bool("SIMULATED_SETTLEMENT_SLEEP")

    # HTTP server
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", os.getenv("PORT", "3000")))
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

    @staticmethod
    def log_environment_config():
        """Log current environment configuration for debugging"""
        logger.info("🔧 StableRoute Configuration:")
        logger.info(f"   Environment: {Config.ENVIRONMENT.upper()}")
        logger.info(f"   Database: {Config.DATABASE_URL.split('@')[-1]}")
        logger.info(
            f"   Route weights: fee={Config.ROUTE_FEE_WEIGHT} time={Config.ROUTE_TIME_WEIGHT}"
        )
        logger.info(f"   Lock timeout: {Config.LOCK_TIMEOUT_SECONDS}s")
        if Config.SETTLEMENT_TIMEOUT_SECONDS > 0:
            logger.info(f"   Settlement timeout: {Config.SETTLEMENT_TIMEOUT_SECONDS}s")
        else:
            logger.info("   Settlement timeout: disabled")

    @staticmethod
    def validate_routing_configuration() -> bool:
        """Scoring weights must be non-negative so route scores stay non-negative"""
        if Config.ROUTE_FEE_WEIGHT < 0 or Config.ROUTE_TIME_WEIGHT < 0:
            logger.error(
                f"❌ CONFIG: Route weights must be non-negative "
                f"(fee={Config.ROUTE_FEE_WEIGHT}, time={Config.ROUTE_TIME_WEIGHT})"
            )
            return False
        return True
