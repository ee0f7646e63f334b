from datetime import datetime
from typing import Optional
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    app_name: str = "SprintKeeper"

    # Any SQLAlchemy URL. PostgreSQL in production, SQLite for local runs and tests.
    database_url: str = "sqlite:///./sprintkeeper.db"

    # Connection pool tuning (ignored for SQLite)
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_recycle: int = 3600
    db_pool_pre_ping: bool = True

    # Sprint calendar
    sprint_anchor: datetime = datetime.fromisoformat("2025-06-20T00:01:00+00:00")
    sprint_cycle_days: int = 14
    future_sprint_count: int = 6
    historic_retention: int = 24

    # Commitment rules
    rolling_window_size: int = 6
    max_pto_sprints: int = 2
    min_build_sprints: int = 2

    # Transaction boundary
    tx_isolation_level: Optional[str] = "SERIALIZABLE"
    tx_max_retries: int = 3
    tx_base_delay_seconds: float = 0.05
    tx_max_delay_seconds: float = 2.0
    statement_timeout_ms: int = 5000

    # Used to build notification payloads
    dashboard_base_url: str = "http://localhost:5000/dashboard"

    # Generic environment (debug/prod)
    APP_ENV: str = "local"  # or "production"
    LOG_LEVEL: str = "INFO"  # DEBUG, INFO, WARNING, ERROR

    class Config:
        env_file = ".env"
        extra = "ignore"

settings = Settings()
