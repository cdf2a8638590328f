# config.py
# Runtime settings. Values come from the environment (and a local .env file);
# nothing else in the package reads os.environ directly.

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field

load_dotenv()


class Settings(BaseModel):
    """Tunables for the reasoning engine, both execution strategies and the backends."""

    model: str = "openai/gpt-4o-mini"
    base_url: str = "https://openrouter.ai/api/v1"
    api_key: str | None = None

    max_iterations: int = Field(default=10, ge=1)
    max_replans: int = Field(default=5, ge=0)
    quality_threshold: float = 0.7
    dispatch_timeout: float = Field(default=120.0, gt=0)
    llm_timeout: float = Field(default=60.0, gt=0)

    script_endpoint: str | None = None
    image_endpoint: str | None = None
    voice_endpoint: str | None = None
    render_command: str | None = None
    output_dir: str = "uploads"

    workers: int = Field(default=4, ge=1)
    quiet: bool = False

    @classmethod
    def from_env(cls) -> "Settings":
        def _get(name: str) -> str | None:
            value = os.getenv(name)
            return value if value not in (None, "") else None

        values = {
            "model": _get("VIDEO_AGENT_MODEL"),
            "base_url": _get("VIDEO_AGENT_BASE_URL"),
            "api_key": _get("OPENROUTER_API_KEY") or _get("OPENAI_API_KEY"),
            "max_iterations": _get("VIDEO_AGENT_MAX_ITERATIONS"),
            "max_replans": _get("VIDEO_AGENT_MAX_REPLANS"),
            "quality_threshold": _get("VIDEO_AGENT_QUALITY_THRESHOLD"),
            "dispatch_timeout": _get("VIDEO_AGENT_DISPATCH_TIMEOUT"),
            "llm_timeout": _get("VIDEO_AGENT_LLM_TIMEOUT"),
            "script_endpoint": _get("VIDEO_AGENT_SCRIPT_ENDPOINT"),
            "image_endpoint": _get("VIDEO_AGENT_IMAGE_ENDPOINT"),
            "voice_endpoint": _get("VIDEO_AGENT_VOICE_ENDPOINT"),
            "render_command": _get("VIDEO_AGENT_RENDER_COMMAND"),
            "output_dir": _get("VIDEO_AGENT_OUTPUT_DIR"),
            "workers": _get("VIDEO_AGENT_WORKERS"),
            "quiet": _get("VIDEO_AGENT_QUIET"),
        }
        return cls.model_validate({k: v for k, v in values.items() if v is not None})
