import os
from pathlib import Path
from typing import Final


DEFAULT_JOURNEY_PATH = Path(__file__).resolve().parent / "assets" / "journey.txt"


class _Config:
    def __init__(self) -> None:
        # Upstream model
        self.gemini_api_key: str | None = os.getenv("GEMINI_API_KEY") or None
        self.gemini_model: str = os.getenv("GEMINI_MODEL", "gemini-2.5-flash")
        self.grounding_tool: str = os.getenv("GEMINI_GROUNDING_TOOL", "google_search").strip().lower()

        # Sessions
        try:
            self.session_ttl_sec: float = float(os.getenv("SESSION_TTL_SEC", "1800"))
        except ValueError:
            self.session_ttl_sec = 1800.0

        # Itinerary source
        self.journey_path: Path = Path(os.getenv("JOURNEY_PATH") or DEFAULT_JOURNEY_PATH)

        # Limits
        self.rate_limit: str = os.getenv("CHAT_RATE_LIMIT", "30/minute")

        try:
            self.port: int = int(os.getenv("PORT", "3000"))
        except ValueError:
            self.port = 3000


CONFIG: Final[_Config] = _Config()
