import os
from typing import Literal, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field

load_dotenv()


class AppSettings(BaseModel):
    model_config = ConfigDict(frozen=True)

    store_backend: Literal["memory", "postgres"] = Field(default="memory", description="Registration store")
    documents_dir: Optional[str] = Field(default=None, description="Local document directory; in-memory when unset")
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "AppSettings":
        return cls(
            store_backend=os.getenv("GI_STORE_BACKEND", "memory").lower(),
            documents_dir=os.getenv("GI_DOCUMENTS_DIR") or None,
            log_level=os.getenv("GI_LOG_LEVEL", "INFO").upper(),
        )
