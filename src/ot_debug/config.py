# config.py
# Process configuration. Read once from the environment (and .env) at start-up.

import logging
import os

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field
from rich.console import Console
from rich.logging import RichHandler

# stdout is reserved for the stdio transport.
err_console = Console(stderr=True)


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() == "true"


class Settings(BaseModel):
    model_config = ConfigDict(frozen=True)

    disable_thought_logging: bool = False
    log_level: str = "WARNING"
    navigation_timeout_ms: int = Field(default=30_000, gt=0)
    probe_timeout_s: float = Field(default=10.0, gt=0)
    headless: bool = True
    user_agent: str = "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36"

    @classmethod
    def from_env(cls) -> "Settings":
        load_dotenv()
        return cls(
            disable_thought_logging=_flag("DISABLE_THOUGHT_LOGGING", "false"),
            log_level=os.getenv("OT_DEBUG_LOG_LEVEL", "WARNING").upper(),
            navigation_timeout_ms=int(os.getenv("OT_DEBUG_NAV_TIMEOUT_MS", "30000")),
            probe_timeout_s=float(os.getenv("OT_DEBUG_PROBE_TIMEOUT_S", "10")),
            headless=_flag("OT_DEBUG_HEADLESS", "true"),
        )


def configure_logging(settings: Settings) -> None:
    """Route the ot_debug logger hierarchy through rich on stderr."""
    handler = RichHandler(console=err_console, show_path=False, rich_tracebacks=True)
    handler.setFormatter(logging.Formatter("%(name)s: %(message)s"))

    root = logging.getLogger("ot_debug")
    root.handlers[:] = [handler]
    root.setLevel(settings.log_level)
    root.propagate = False
