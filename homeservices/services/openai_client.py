"""
OpenAI client service - vision calls for photo curation
"""

import json
import re

import httpx
from openai import AsyncOpenAI

from ..config import OPENAI_API_KEY

_httpx_timeout = httpx.Timeout(connect=30.0, read=120.0, write=60.0, pool=30.0)

_CODE_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$")


class OpenAINotConfigured(RuntimeError):
    pass


def create_async_openai_client() -> AsyncOpenAI:
    """New AsyncOpenAI client per batch so long-running jobs don't share a pool"""
    if not OPENAI_API_KEY:
        raise OpenAINotConfigured("OPENAI_API_KEY is not set")
    return AsyncOpenAI(
        api_key=OPENAI_API_KEY,
        timeout=120.0,
        max_retries=2,
        http_client=httpx.AsyncClient(timeout=_httpx_timeout),
    )


def parse_json_content(content: str) -> dict:
    """Model output may be wrapped in ```json fences"""
    cleaned = _CODE_FENCE.sub("", content.strip()).strip()
    return json.loads(cleaned)
