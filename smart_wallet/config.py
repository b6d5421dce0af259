from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv
import logging
import sys
from typing import Optional
import structlog

from .exceptions import ConfigurationError

# Load environment variables early
load_dotenv()

# Step 1: Configure stdlib logging to use stderr
logging.basicConfig(
    format='%(asctime)s [%(levelname)-8s] %(message)s',
    stream=sys.stderr,
    level=logging.INFO,
    force=True
)

# Step 2: Configure structlog
structlog.configure(
    processors=[
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
        structlog.processors.KeyValueRenderer(key_order=['timestamp', 'level', 'event']),
    ],
    wrapper_class=structlog.stdlib.BoundLogger,
    logger_factory=structlog.stdlib.LoggerFactory(),
    cache_logger_on_first_use=True,
)

logger = logging.getLogger(__name__)


def _get_env_var(var: str, default: Optional[str] = None) -> str:
    """Get environment variable, falling back to a default."""
    value = os.environ.get(var, default)
    return value or ""


def _get_bool(var: str, default: str) -> bool:
    return _get_env_var(var, default).lower() == "true"


@dataclass
class Config:
    """Configuration for the Smart Wallet ledger engine."""

    db_path: str = _get_env_var("SMART_WALLET_DB_PATH", "smart_wallet.db")
    backup_dir: Path = Path(_get_env_var("SMART_WALLET_BACKUP_DIR", "./backups"))

    # A new portfolio's first goal must sit above its starting capital
    enforce_goal_above_capital: bool = _get_bool("ENFORCE_GOAL_ABOVE_CAPITAL", "true")
    notifications_enabled: bool = _get_bool("NOTIFICATIONS_ENABLED", "true")

    # Cairo listings are quoted with a ".CA" suffix on Yahoo Finance
    quote_symbol_suffix: str = _get_env_var("QUOTE_SYMBOL_SUFFIX", ".CA")
    quote_timeout: int = int(_get_env_var("QUOTE_TIMEOUT", "15"))

    default_currency: str = _get_env_var("DEFAULT_CURRENCY", "EGP")
    log_level: str = _get_env_var("LOG_LEVEL", "INFO")

    def __post_init__(self):
        self.default_currency = self.default_currency.strip().upper()

        if self.quote_timeout <= 0:
            raise ConfigurationError(
                "Quote timeout must be positive",
                config_key="QUOTE_TIMEOUT",
                expected="> 0"
            )

        log_level = getattr(logging, self.log_level.upper(), None)
        if not isinstance(log_level, int):
            raise ConfigurationError(
                f"Unknown log level: {self.log_level}",
                config_key="LOG_LEVEL",
                expected="DEBUG, INFO, WARNING, ERROR or CRITICAL"
            )

        # Set logging level
        logging.getLogger().setLevel(log_level)
        for name in logging.root.manager.loggerDict:
            logging.getLogger(name).setLevel(log_level)

    def ensure_backup_dir(self) -> Path:
        """Create the backup directory on first use."""
        self.backup_dir.mkdir(parents=True, exist_ok=True)
        return self.backup_dir


config = Config()
