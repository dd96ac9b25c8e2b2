"""
Configuration settings for the Benefit Rules Engine
"""
from typing import List
from pydantic_settings import BaseSettings
from pydantic import Field, ConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # MongoDB Configuration
    mongodb_url: str = Field(default="mongodb://localhost:27017", env="MONGODB_URL")
    mongodb_db_name: str = Field(default="benefit_rules", env="MONGODB_DB_NAME")
    rules_collection: str = Field(default="rules", env="RULES_COLLECTION")

    # Application Configuration
    app_name: str = Field(default="Benefit Rules Engine", env="APP_NAME")
    app_version: str = Field(default="1.0.0", env="APP_VERSION")
    debug: bool = Field(default=False, env="DEBUG")
    log_level: str = Field(default="INFO", env="LOG_LEVEL")

    # API Configuration
    api_prefix: str = Field(default="/api/v1", env="API_PREFIX")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:8080",
        env="CORS_ORIGINS"
    )

    # Logic evaluation
    evaluation_timeout_ms: int = Field(default=5000, env="EVALUATION_TIMEOUT_MS")
    evaluation_max_depth: int = Field(default=100, env="EVALUATION_MAX_DEPTH")

    # Logic validation
    validation_max_depth: int = Field(default=20, env="VALIDATION_MAX_DEPTH")
    validation_max_complexity: int = Field(default=100, env="VALIDATION_MAX_COMPLEXITY")

    # Import manager
    import_timeout_ms: int = Field(default=30000, env="IMPORT_TIMEOUT_MS")
    import_max_retries: int = Field(default=3, env="IMPORT_MAX_RETRIES")
    import_backoff_base_ms: int = Field(default=1000, env="IMPORT_BACKOFF_BASE_MS")
    import_backoff_max_ms: int = Field(default=10000, env="IMPORT_BACKOFF_MAX_MS")
    import_recent_window_ms: int = Field(default=60000, env="IMPORT_RECENT_WINDOW_MS")
    import_max_concurrent: int = Field(default=4, env="IMPORT_MAX_CONCURRENT")
    import_pressure_delay_ms: int = Field(default=1000, env="IMPORT_PRESSURE_DELAY_MS")

    # Version retention
    archive_keep_versions: int = Field(default=5, env="ARCHIVE_KEEP_VERSIONS")
    delete_keep_versions: int = Field(default=3, env="DELETE_KEEP_VERSIONS")

    # Performance monitoring
    slow_evaluation_ms: float = Field(default=100.0, env="SLOW_EVALUATION_MS")
    max_metrics: int = Field(default=10000, env="MAX_METRICS")

    # Status derivation thresholds (pass ratio)
    likely_threshold: float = Field(default=0.8, env="LIKELY_THRESHOLD")
    maybe_threshold: float = Field(default=0.5, env="MAYBE_THRESHOLD")
    unlikely_threshold: float = Field(default=0.3, env="UNLIKELY_THRESHOLD")
    default_jurisdiction: str = Field(default="US-FEDERAL", env="DEFAULT_JURISDICTION")

    def get_cors_origins_list(self) -> List[str]:
        """Get CORS origins as a list"""
        if ',' in self.cors_origins:
            return [origin.strip() for origin in self.cors_origins.split(',')]
        return [self.cors_origins.strip()]

    model_config = ConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False
    )


# Create global settings instance
settings = Settings()
