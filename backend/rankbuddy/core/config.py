import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    redis_url: str = os.getenv("REDIS_URL", "redis://redis:6379/0")
    key_prefix: str = os.getenv("RANKBUDDY_KEY_PREFIX", "rankbuddy")

    # TMDB catalog
    tmdb_api_key: str = os.getenv("TMDB_API_KEY", "")
    tmdb_base_url: str = os.getenv("TMDB_BASE_URL", "https://api.themoviedb.org/3")
    tmdb_region: str = os.getenv("TMDB_REGION", "US")
    tmdb_language: str = os.getenv("TMDB_LANGUAGE", "en-US")
    catalog_timeout_seconds: float = float(os.getenv("CATALOG_TIMEOUT_SECONDS", "10"))
    rate_limit_enabled: bool = os.getenv("RATE_LIMIT_ENABLED", "false").lower() == "true"

    # Candidate quality gates
    min_vote_count: int = int(os.getenv("MIN_VOTE_COUNT", "500"))
    min_score: float = float(os.getenv("MIN_SCORE", "7.0"))

    # Pool construction
    pool_max_pages: int = int(os.getenv("POOL_MAX_PAGES", "3"))
    pool_target_size: int = int(os.getenv("POOL_TARGET_SIZE", "30"))
    pool_keep: int = int(os.getenv("POOL_KEEP", "20"))
    pool_streaming_probe_limit: int = int(os.getenv("POOL_STREAMING_PROBE_LIMIT", "20"))
    pool_streaming_match_limit: int = int(os.getenv("POOL_STREAMING_MATCH_LIMIT", "15"))
    popular_max_page: int = int(os.getenv("POPULAR_MAX_PAGE", "20"))

    # Scheduling
    baseline_remaining_ratio: float = float(os.getenv("BASELINE_REMAINING_RATIO", "0.15"))
    min_rated_items: int = int(os.getenv("MIN_RATED_ITEMS", "3"))
    min_rated_for_known_pair: int = int(os.getenv("MIN_RATED_FOR_KNOWN_PAIR", "5"))

    # Rating update rule (empirically tuned, keep overridable)
    rating_min_delta: float = float(os.getenv("RATING_MIN_DELTA", "0.1"))
    rating_upset_multiplier: float = float(os.getenv("RATING_UPSET_MULTIPLIER", "1.2"))
    rating_major_upset_gap: float = float(os.getenv("RATING_MAJOR_UPSET_GAP", "3.0"))
    rating_major_upset_bonus: float = float(os.getenv("RATING_MAJOR_UPSET_BONUS", "3.0"))
    rating_max_delta: float = float(os.getenv("RATING_MAX_DELTA", "0.7"))
    rating_tough_nudge: float = float(os.getenv("RATING_TOUGH_NUDGE", "0.1"))
    rating_tough_known_nudge: float = float(os.getenv("RATING_TOUGH_KNOWN_NUDGE", "0.05"))
    rating_elo_scale: float = float(os.getenv("RATING_ELO_SCALE", "10"))

settings = Settings()
