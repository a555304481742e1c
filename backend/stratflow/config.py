"""
Environment-driven settings
"""
import os
from dataclasses import dataclass, field
from functools import lru_cache
from typing import List, Optional

from dotenv import load_dotenv


def _csv(value: str) -> List[str]:
    return [item.strip() for item in value.split(",") if item.strip()]


@dataclass(frozen=True)
class Settings:
    log_level: str = "INFO"
    log_file: Optional[str] = None
    cors_origins: List[str] = field(default_factory=lambda: [
        "http://localhost:3000", "http://localhost:5173", "http://127.0.0.1:5173",
    ])
    initial_balance: float = 10000.0
    commission_pct: float = 0.1
    slippage_pct: float = 0.05
    host: str = "0.0.0.0"
    port: int = 4000


def load_settings() -> Settings:
    """Read settings from .env and the process environment"""
    load_dotenv()
    defaults = Settings()
    return Settings(
        log_level=os.environ.get("STRATFLOW_LOG_LEVEL", defaults.log_level).upper(),
        log_file=os.environ.get("STRATFLOW_LOG_FILE") or None,
        cors_origins=_csv(os.environ["CORS_ORIGINS"]) if os.environ.get("CORS_ORIGINS") else defaults.cors_origins,
        initial_balance=float(os.environ.get("STRATFLOW_INITIAL_BALANCE", defaults.initial_balance)),
        commission_pct=float(os.environ.get("STRATFLOW_COMMISSION_PCT", defaults.commission_pct)),
        slippage_pct=float(os.environ.get("STRATFLOW_SLIPPAGE_PCT", defaults.slippage_pct)),
        host=os.environ.get("STRATFLOW_HOST", defaults.host),
        port=int(os.environ.get("STRATFLOW_PORT", defaults.port)),
    )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return load_settings()
