from __future__ import annotations

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    API_BASE_URL: str = "http://localhost:8000/api"
    API_TOKEN: str = ""
    HTTP_TIMEOUT_SECONDS: float = 10.0

    RECONNECT_DELAY_SECONDS: float = 5.0
    TYPING_EXPIRY_SECONDS: float = 3.0
    AT_BOTTOM_THRESHOLD_PX: int = 100
    HISTORY_PAGE_SIZE: int = 50

    # Older servers nest event payloads under "data".
    ACCEPT_LEGACY_DATA_KEY: bool = False

    LOG_LEVEL: str = "INFO"

    @property
    def auth_headers(self) -> dict[str, str]:
        if not self.API_TOKEN:
            return {}
        return {"Authorization": f"Bearer {self.API_TOKEN}"}

    model_config = ConfigDict(
        env_file=".env",
        extra="ignore",
    )


settings = Settings()
