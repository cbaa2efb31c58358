from typing import List, Literal
from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Environment
    ENVIRONMENT: Literal["development", "testing", "production"] = "development"
    DEBUG: bool = False

    PROJECT_NAME: str = "pageflow"
    VERSION: str = "1.0.0"

    # Pagination
    PAGE_BATCH_SIZE: int = 20
    PRELOAD_BATCHES: int = 2

    # Scroll trigger / visible range
    SCROLL_ROOT_MARGIN_PX: int = 400
    SCROLL_DEBOUNCE_MS: float = 100

    # Scroll anchoring
    SCROLL_ANCHOR_NEAR_BOTTOM_PX: float = 200
    SCROLL_ANCHOR_EPSILON_PX: float = 48

    # Per-route scroll restoration
    SCROLL_SAVE_TRANSIENT_PX: float = 20
    SCROLL_SAVE_KEEP_PX: float = 50
    SCROLL_RESTORE_TOLERANCE_PX: float = 50
    SCROLL_RESTORE_SETTLE_MS: float = 50
    SCROLL_RESTORE_RETRY_DELAYS_MS: List[float] = [100, 200, 300, 400, 700]
    SCROLL_POSITION_TTL_MS: float = 30 * 60 * 1000

    # Skeletons / inline loaders
    MIN_SKELETON_DURATION_MS: float = 200
    SKELETON_FADE_OUT_MS: float = 0
    LOAD_MORE_SPINNER_MIN_MS: float = 400

    # Navigation overlay
    OVERLAY_MIN_VISIBLE_MS: float = 1500
    OVERLAY_MAX_VISIBLE_MS: float = 10000
    OVERLAY_FADE_OUT_MS: float = 200

    # Cache
    LIST_CACHE_TTL_MS: float = 5 * 60 * 1000
    CACHE_MAX_ENTRIES: int = 128

    # Content source
    CONTENT_SOURCE_URL: str = "http://127.0.0.1:8000"
    CONTENT_SOURCE_PATH: str = "/api/v1/articles"
    REQUEST_TIMEOUT: float = 10.0

    # Logging
    LOG_LEVEL: str = "INFO"
    LOG_FILE: str = "pageflow.log"
    LOG_FORMAT: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    LOG_DATE_FORMAT: str = "%Y-%m-%d %H:%M:%S"

    class Config:
        env_file = ".env"
        case_sensitive = True

    def __init__(self, **kwargs):
        super().__init__(**kwargs)

        # Environment-specific configurations
        if self.ENVIRONMENT == "development":
            self.DEBUG = True
            self.LOG_LEVEL = "DEBUG"

        elif self.ENVIRONMENT == "testing":
            self.DEBUG = True
            self.LOG_LEVEL = "ERROR"  # Reduce test noise

        elif self.ENVIRONMENT == "production":
            self.DEBUG = False
            self.LOG_LEVEL = "WARNING"
            if self.OVERLAY_MIN_VISIBLE_MS > self.OVERLAY_MAX_VISIBLE_MS:
                raise ValueError(
                    "OVERLAY_MIN_VISIBLE_MS must not exceed OVERLAY_MAX_VISIBLE_MS"
                )


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()


# Global settings instance
settings = get_settings()
