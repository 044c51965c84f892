from __future__ import annotations

from pathlib import Path

from pydantic_settings import BaseSettings

BASE_DIR = Path(__file__).resolve().parent
RULES_DIR = BASE_DIR / "rules"


class Settings(BaseSettings):
    # --- app ---
    app_name: str = "CRM Analytics Dashboard API"
    environment: str = "production"

    # --- database ---
    db_path: str = str(BASE_DIR / "db" / "crm.db")

    # --- security ---
    patterns_file: str = str(RULES_DIR / "security_patterns.yaml")
    max_body_bytes: int = 10 * 1024 * 1024
    trust_proxy: bool = True

    # --- rate limits (window in ms, max requests per window) ---
    general_window_ms: int = 15 * 60 * 1000
    general_max_requests: int = 100
    ai_window_ms: int = 60 * 1000
    ai_max_requests: int = 10
    auth_window_ms: int = 15 * 60 * 1000
    auth_max_requests: int = 5

    # --- telemetry ---
    metrics_capacity: int = 1000
    snapshot_capacity: int = 60  # one hour at the default cadence
    sample_interval: float = 60.0  # seconds between system snapshots
    sample_window: float = 60.0  # trailing window reduced per snapshot
    slow_request_ms: int = 1000
    alert_request_ms: int = 5000

    # --- server ---
    host: str = "0.0.0.0"
    port: int = 5000
    cors_origins: list[str] = ["http://localhost:5173"]

    model_config = {"env_file": ".env", "env_prefix": "CRM_"}

    @property
    def is_development(self) -> bool:
        return self.environment.lower() == "development"


settings = Settings()
