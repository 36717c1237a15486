"""
Central feature flags.

Set via environment variables (prefix FF_) or .env file.
When a flag is OFF, the system uses a local fallback. Nothing crashes.
"""

from functools import lru_cache
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FeatureFlags(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Auth ─────────────────────────────────────────────────────────
    use_auth: bool = Field(default=True, alias="FF_USE_AUTH")
    # ON  → Bearer JWT validated (JWKS or shared secret). Needs AUTH_* settings.
    # OFF → Dev user injected (user_id="dev-user"). No token needed.

    # ── Similarity search ────────────────────────────────────────────
    use_vector_search: bool = Field(default=True, alias="FF_USE_VECTOR_SEARCH")
    # ON  → pgvector `<->` operator in PostgreSQL (needs the vector extension).
    # OFF → Vectors loaded and ranked in Python. Slower but works on SQLite.

    # ── Concurrency ──────────────────────────────────────────────────
    use_optimistic_locking: bool = Field(default=False, alias="FF_USE_OPTIMISTIC_LOCKING")
    # ON  → PUT is a compare-and-swap on updated_at. Lost race → 409.
    # OFF → Last writer wins.


@lru_cache
def get_flags() -> FeatureFlags:
    return FeatureFlags()
