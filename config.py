import os
from dataclasses import dataclass, field
from typing import List

from dotenv import load_dotenv

load_dotenv()


def _split_origins(raw: str) -> List[str]:
    return [o.strip() for o in raw.split(",") if o.strip()]


@dataclass
class Settings:
    database_url: str = "mongodb://localhost:27017"
    database_name: str = "finance"
    cors_origins: List[str] = field(default_factory=lambda: ["*"])
    port: int = 8000
    log_level: str = "INFO"


def get_settings() -> Settings:
    """Read settings from the environment (and a local .env file, if any)."""
    return Settings(
        database_url=os.getenv("DATABASE_URL", "mongodb://localhost:27017"),
        database_name=os.getenv("DATABASE_NAME", "finance"),
        cors_origins=_split_origins(os.getenv("CORS_ORIGINS", "*")) or ["*"],
        port=int(os.getenv("PORT", 8000)),
        log_level=os.getenv("LOG_LEVEL", "INFO").upper(),
    )
