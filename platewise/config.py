from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    database_url: str = "sqlite:///./platewise.db"
    anthropic_api_key: str = ""

    analysis_model: str = "claude-sonnet-4-5-20250929"
    analysis_temperature: float = 0.2  # Low temperature keeps tool replies deterministic
    initial_max_tokens: int = 2048
    tool_max_tokens: int = 2048
    deep_analysis_max_tokens: int = 4096

    # Anthropic API timeout settings (seconds)
    anthropic_timeout: int = 60
    anthropic_connect_timeout: int = 10

    # Tool invocation retry policy
    retry_max_attempts: int = 3
    retry_base_delay: float = 2.0  # delay = attempt * base_delay

    # Orchestration policy
    secondary_confidence_threshold: float = 0.8
    analysis_timeout_seconds: float = 45.0
    brand_cache_ttl_days: int = 7

    # Post-processing
    calorie_tolerance: float = 0.08
    min_micronutrients: int = 3
    max_micronutrients: int = 8

    log_level: str = "INFO"

    class Config:
        env_file = ".env"


settings = Settings()
