from pydantic import BaseModel
from dotenv import load_dotenv
import os
from typing import Set

load_dotenv()

class Settings(BaseModel):
    bot_token: str
    database_url: str
    scheduler_db_url: str
    admins: Set[int] = set()

    # Транзакции торгов: повторы при временных сбоях БД (lock timeout и т.п.)
    trade_tx_retries: int = 3
    trade_tx_backoff_secs: float = 0.05

    # Outbox уведомлений
    notify_interval_secs: int = 10
    notify_max_attempts: int = 20
    notify_batch: int = 100

def _parse_admins(raw: str | None) -> Set[int]:
    if not raw:
        return set()
    out = set()
    for part in raw.replace(";", ",").split(","):
        p = part.strip()
        if p:
            try:
                out.add(int(p))
            except ValueError:
                pass
    return out

def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    return int(raw) if raw and raw.strip() else default

def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    return float(raw) if raw and raw.strip() else default

settings = Settings(
    bot_token=os.getenv("BOT_TOKEN", ""),
    database_url=os.getenv("DATABASE_URL", "sqlite+aiosqlite:///data/guildvault.db"),
    scheduler_db_url=os.getenv("SCHEDULER_DB_URL", "sqlite:///data/scheduler.db"),
    admins=_parse_admins(os.getenv("ADMINS")),
    trade_tx_retries=_env_int("TRADE_TX_RETRIES", 3),
    trade_tx_backoff_secs=_env_float("TRADE_TX_BACKOFF_SECS", 0.05),
    notify_interval_secs=_env_int("NOTIFY_INTERVAL_SECS", 10),
    notify_max_attempts=_env_int("NOTIFY_MAX_ATTEMPTS", 20),
    notify_batch=_env_int("NOTIFY_BATCH", 100),
)
