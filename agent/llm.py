# agent/llm.py
"""Chat model construction."""
from __future__ import annotations

from typing import Tuple

import httpx
from langchain_openai import ChatOpenAI

from utils.config import Settings


def create_chat_models(settings: Settings) -> Tuple[ChatOpenAI, ChatOpenAI]:
    """(deep_thinking_llm, quick_thinking_llm) sharing one HTTP client."""
    http_client = httpx.Client(timeout=settings.llm_timeout)

    deep = ChatOpenAI(
        model=settings.deep_think_llm,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        temperature=0.3,
        http_client=http_client,
    )
    quick = ChatOpenAI(
        model=settings.quick_think_llm,
        api_key=settings.openai_api_key,
        base_url=settings.openai_base_url,
        temperature=0.3,
        http_client=http_client,
    )
    return deep, quick
