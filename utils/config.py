# utils/config.py
# This file is used to load configuration settings for the application.
import os
from pathlib import Path
from typing import List

from pydantic import BaseModel, Field
from dotenv import load_dotenv

PROJECT_ROOT = Path(__file__).resolve().parent.parent

_ENV_LOADED = False


def _ensure_env_loaded() -> None:
    global _ENV_LOADED
    if _ENV_LOADED:
        return
    env_path = PROJECT_ROOT / ".env"
    load_dotenv(env_path, override=False)
    _ENV_LOADED = True


def _get_bool(name: str, default: bool) -> bool:
    v = os.getenv(name)
    if v is None:
        return default
    v = v.strip().strip('"').strip("'").lower()
    return v in ("1", "true", "yes", "on")


def _get_list(name: str, default: List[str]) -> List[str]:
    v = os.getenv(name)
    if not v:
        return list(default)
    return [item.strip().lower() for item in v.split(",") if item.strip()]


class Settings(BaseModel):
    openai_api_key: str
    openai_base_url: str
    deep_think_llm: str
    quick_think_llm: str
    llm_timeout: float = Field(gt=0)

    finnhub_api_key: str
    dashscope_api_key: str
    google_api_key: str

    selected_analysts: List[str]
    max_debate_rounds: int = Field(ge=1)
    max_risk_discuss_rounds: int = Field(ge=1)
    max_recur_limit: int = Field(ge=1)
    signal_fallback: bool

    cache_dir: str
    enable_cache_length_check: bool
    max_cache_content_length: int = Field(gt=0)
    min_api_interval: float = Field(ge=0)
    news_look_back_days: int = Field(ge=1)


def load_settings() -> Settings:
    _ensure_env_loaded()
    return Settings(
        openai_api_key=os.getenv("OPENAI_API_KEY", ""),
        openai_base_url=os.getenv("OPENAI_BASE_URL", "https://api.openai.com/v1"),
        deep_think_llm=os.getenv("DEEP_THINK_LLM", "gpt-4o"),
        quick_think_llm=os.getenv("QUICK_THINK_LLM", "gpt-4o-mini"),
        llm_timeout=float(os.getenv("LLM_TIMEOUT", "60")),
        finnhub_api_key=os.getenv("FINNHUB_API_KEY", ""),
        dashscope_api_key=os.getenv("DASHSCOPE_API_KEY", ""),
        google_api_key=os.getenv("GOOGLE_API_KEY", ""),
        selected_analysts=_get_list("SELECTED_ANALYSTS", ["market", "news"]),
        max_debate_rounds=int(os.getenv("MAX_DEBATE_ROUNDS", "1")),
        max_risk_discuss_rounds=int(os.getenv("MAX_RISK_DISCUSS_ROUNDS", "1")),
        max_recur_limit=int(os.getenv("MAX_RECUR_LIMIT", "100")),
        signal_fallback=_get_bool("SIGNAL_FALLBACK", False),
        cache_dir=os.getenv("DATA_CACHE_DIR", str(PROJECT_ROOT / "data_cache")),
        enable_cache_length_check=_get_bool("ENABLE_CACHE_LENGTH_CHECK", False),
        max_cache_content_length=int(os.getenv("MAX_CACHE_CONTENT_LENGTH", "50000")),
        min_api_interval=float(os.getenv("MIN_API_INTERVAL", "1.0")),
        news_look_back_days=int(os.getenv("NEWS_LOOK_BACK_DAYS", "7")),
    )
