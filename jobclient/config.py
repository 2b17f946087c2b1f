"""Application configuration via environment variables."""

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Backend
    api_base_url: str = "http://localhost:8080"
    job_name_header: str = "X-Job-Name"

    # Transports (large payloads get a long timeout: 30 minutes)
    upload_timeout_seconds: float = 30 * 60
    submit_timeout_seconds: float = 60

    # Pipeline
    pipeline_start_delay_seconds: float = 0.1

    # Notifications
    notification_duration_ms: int = 5000

    # Local control API
    control_port: int = 8002
    log_level: str = "INFO"

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}


settings = Settings()
