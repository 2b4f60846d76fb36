"""Application configuration using Pydantic settings."""

from functools import lru_cache
from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ---------------- APP ----------------
    app_name: str = "LiveKit Call Sync"
    app_version: str = "0.1.0"
    debug: bool = False

    # ---------------- DATABASE ----------------
    database_url: str = ""

    # ---------------- LIVEKIT ----------------
    livekit_api_key: str = ""
    livekit_api_secret: str = ""
    # Clock skew tolerated on the webhook token's exp/nbf claims.
    webhook_leeway_seconds: int = 10

    def missing_credentials(self) -> List[str]:
        """Names of operator-supplied settings that are still unset."""
        missing = []
        for name in ("database_url", "livekit_api_key", "livekit_api_secret"):
            if not str(getattr(self, name) or "").strip():
                missing.append(name)
        return missing


@lru_cache()
def get_settings() -> Settings:
    return Settings()
