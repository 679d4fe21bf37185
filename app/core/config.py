from functools import lru_cache
from pathlib import Path

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "SwipeHire Auto Apply"
    environment: str = "dev"
    debug: bool = True

    api_host: str = "0.0.0.0"
    api_port: int = 8000

    redis_url: str = "redis://redis:6379/0"

    # Oracle used for open-ended questions. "none" disables it entirely.
    llm_provider: str = "none"
    llm_model: str = "llama-3.3-70b-versatile"
    llm_api_key: str = ""
    llm_base_url: str = "https://api.openai.com/v1"
    llm_temperature: float = 0.7
    llm_max_tokens: int = 500
    llm_timeout_seconds: int = 30
    oracle_rate_limit: int = 30
    rate_limit_window_seconds: int = 60

    data_dir: Path = Path("data")
    queue_file_name: str = "application_queue.json"
    preferences_file_name: str = "preferences.json"
    swipes_file_name: str = "job_swipes.json"
    screenshot_dir: Path = Path(".runshots")

    browser_headless: bool = True
    page_timeout_ms: int = 15000
    form_load_timeout_ms: int = 20000
    new_page_timeout_ms: int = 5000
    file_chooser_timeout_ms: int = 3000
    autofill_settle_ms: int = 3000
    pre_submit_wait_ms: int = 2000
    post_submit_settle_ms: int = 1200

    max_submit_attempts: int = 5
    max_corrective_passes: int = 3
    answer_max_chars: int = 500
    oracle_min_label_chars: int = 10

    auto_submit_default: bool = True

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    @property
    def queue_path(self) -> Path:
        return self.data_dir / self.queue_file_name

    @property
    def preferences_path(self) -> Path:
        return self.data_dir / self.preferences_file_name

    @property
    def swipes_path(self) -> Path:
        return self.data_dir / self.swipes_file_name


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
