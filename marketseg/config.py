from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Anthropic (required at run time)
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-20250514"
    claude_temperature: float = 0.7
    claude_timeout_seconds: float | None = None  # None = SDK default

    # Serper (required at run time)
    serper_api_key: str = ""
    serper_base_url: str = "https://google.serper.dev"
    serper_timeout_seconds: float = 15.0
    serper_results_per_query: int = 30
    serper_country: str = "us"
    serper_language: str = "en"
    search_max_retries: int = 3
    search_retry_delay_seconds: float = 2.0

    # Research pipeline
    max_search_queries: int = 150  # hard ceiling on generated queries
    default_query_volume: int = 250
    platform_switch_delay_seconds: float = 1.0
    segment_max_retries: int = 3
    segment_retry_delay_seconds: float = 3.0
    persona_batch_size: int = 3
    persona_max_attempts: int = 3
    persona_batch_delay_seconds: float = 1.0
    synthesis_max_results: int = 100
    synthesis_reduced_results: int = 50

    # Quick mode for constrained hosting
    quick_mode: bool = False
    quick_mode_search_limit: int = 50
    quick_mode_platform_limit: int = 5
    quick_mode_batch_size: int = 10
    quick_mode_batch_delay_seconds: float = 0.5
    quick_mode_results_per_query: int = 10

    # Status channel / background jobs
    status_poll_interval_seconds: float = 0.5
    job_ttl_seconds: int = 3600

    # App
    cors_origins: str = "http://localhost:3000"
    environment: str = "production"  # development | production
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]

    @property
    def is_development(self) -> bool:
        return self.environment.lower().strip() == "development"


settings = Settings()
