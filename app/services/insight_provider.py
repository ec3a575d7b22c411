"""Insight Provider - external text completion for feedback analysis.

Sends the response text to a hosted language model (Anthropic messages
API) and turns its JSON answer into an Insight. Transport failures are
mapped to distinct error kinds so callers can tell a bad key from a
rate limit or a timeout.
"""

import asyncio
import json
import logging
import math
import re
import time as _time
from typing import Any, Dict, Mapping, Optional, Union

import httpx
from pydantic import ValidationError as PydanticValidationError

from app.config import settings
from app.core.metrics import track_insight_call
from app.exceptions import (
    InsightAuthError,
    InsightInvalidPrompt,
    InsightRateLimited,
    InsightTimeout,
    InsightUnavailable,
)
from app.schemas.feedback import Insight, ResponseSnapshot, Sentiment, Urgency
from app.services.feedback.rule_engine import response_text

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"

_FENCED = re.compile(r"^```(?:json)?\s*([\s\S]*?)\s*```$")
_OBJECT = re.compile(r"\{[\s\S]*\}")

ANALYSIS_PROMPT = """
Analyze customer feedback and return JSON only (no markdown):

{{
  "sentiment": "positive|neutral|negative",
  "sentimentScore": number (-1 to 1),
  "urgency": "low|normal|high",
  "summary": "short issue summary",
  "emotions": ["frustration", "appreciation", etc],
  "keywords": ["keyword1", "keyword2"],
  "themes": ["theme1", "theme2"],
  "classification": {{
    "isComplaint": boolean,
    "isPraise": boolean,
    "isSuggestion": boolean
  }},
  "confidence": number (0 to 1)
}}

Feedback:
"{text}"
"""


def extract_json(text: Optional[str]) -> Optional[str]:
    """Strip markdown fences and return the outermost JSON object in ``text``."""
    if not text:
        return None
    cleaned = text.strip()
    fenced = _FENCED.match(cleaned)
    if fenced:
        cleaned = fenced.group(1).strip()
    obj = _OBJECT.search(cleaned)
    if obj:
        cleaned = obj.group(0)
    return cleaned


def _normalize_prompt(prompt_input: Union[str, Mapping[str, Any], None]) -> str:
    prompt = prompt_input
    if isinstance(prompt_input, Mapping):
        if prompt_input.get("prompt"):
            prompt = prompt_input["prompt"]
        elif prompt_input.get("text"):
            prompt = prompt_input["text"]
        else:
            prompt = json.dumps(dict(prompt_input))
    return str(prompt or "").strip()


class InsightProvider:
    """Client for the hosted completion model."""

    def __init__(
        self,
        api_key: Optional[str] = None,
        url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        max_tokens: Optional[int] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.api_key = api_key if api_key is not None else settings.INSIGHT_PROVIDER_API_KEY
        self.url = url or settings.INSIGHT_PROVIDER_URL
        self.model = model or settings.INSIGHT_MODEL
        self.timeout = timeout or settings.INSIGHT_TIMEOUT_SECONDS
        self.max_tokens = max_tokens or settings.INSIGHT_MAX_TOKENS
        self._transport = transport

    @property
    def is_configured(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        prompt_input: Union[str, Mapping[str, Any]],
        max_tokens: Optional[int] = None,
    ) -> Dict[str, Any]:
        """
        Complete a prompt.

        Args:
            prompt_input: Prompt text, or a mapping with ``prompt`` or ``text``

        Returns:
            {"text": str, "usage": {"prompt_tokens": int, "completion_tokens": int}}
        """
        prompt = _normalize_prompt(prompt_input)
        if not prompt:
            raise InsightInvalidPrompt()
        if not self.api_key:
            raise InsightAuthError()

        payload = {
            "model": self.model,
            "max_tokens": max_tokens or self.max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

        start = _time.time()
        try:
            async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
                response = await client.post(
                    self.url,
                    headers={
                        "x-api-key": self.api_key,
                        "anthropic-version": ANTHROPIC_VERSION,
                        "content-type": "application/json",
                    },
                    json=payload,
                )
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException:
            track_insight_call(_time.time() - start, success=False)
            logger.warning(f"Insight provider timed out after {self.timeout}s")
            raise InsightTimeout(self.timeout)
        except httpx.HTTPStatusError as e:
            track_insight_call(_time.time() - start, success=False)
            raise self._map_status_error(e.response)
        except httpx.HTTPError as e:
            track_insight_call(_time.time() - start, success=False)
            logger.error(f"Insight provider request failed: {e}")
            raise InsightUnavailable(f"Insight provider request failed: {e}")
        except ValueError as e:
            track_insight_call(_time.time() - start, success=False)
            logger.error(f"Insight provider returned a non-JSON body: {e}")
            raise InsightUnavailable("Insight provider returned an unreadable response")

        if not isinstance(data, dict):
            track_insight_call(_time.time() - start, success=False)
            logger.error(f"Insight provider returned a JSON {type(data).__name__} instead of an object")
            raise InsightUnavailable("Insight provider returned an unreadable response")

        duration = _time.time() - start
        track_insight_call(duration)

        text = ""
        if data.get("content"):
            text = data["content"][0].get("text", "")

        usage = data.get("usage") or {}
        result = {
            "text": text,
            "usage": {
                "prompt_tokens": usage.get("input_tokens", math.ceil(len(prompt) / 4)),
                "completion_tokens": usage.get("output_tokens", math.ceil(len(text) / 4)),
            },
        }
        logger.info(f"Insight completion: model={self.model}, usage={result['usage']}, {int(duration * 1000)}ms")
        return result

    @staticmethod
    def _map_status_error(response: httpx.Response) -> InsightUnavailable:
        status = response.status_code
        if status in (401, 403):
            logger.error(f"Insight provider rejected credentials (HTTP {status})")
            return InsightAuthError()
        if status == 429:
            try:
                retry_after = int(response.headers.get("retry-after", 60))
            except ValueError:
                retry_after = 60
            logger.warning(f"Insight provider rate limited, retry after {retry_after}s")
            return InsightRateLimited(retry_after=retry_after)
        logger.error(f"Insight provider returned HTTP {status}")
        return InsightUnavailable(f"Insight provider returned HTTP {status}")

    async def analyze(self, response: ResponseSnapshot) -> Insight:
        """Analyze a response's free text into an Insight."""
        text = response_text(response)
        if not text:
            # Nothing to read; numeric fields are handled by the rule engine
            logger.info(f"Response {response.id} has no text, using neutral insight")
            return Insight(sentiment=Sentiment.NEUTRAL, urgency=Urgency.LOW)

        completion = await self.complete({"prompt": ANALYSIS_PROMPT.format(text=text)})
        raw = completion["text"]
        try:
            return Insight.model_validate(json.loads(extract_json(raw) or ""))
        except (ValueError, PydanticValidationError) as e:
            logger.error(f"Insight output could not be parsed for response {response.id}: {e}")
            raise InsightUnavailable("Insight provider returned malformed output")


class MockInsightProvider(InsightProvider):
    """Mock provider for testing and development."""

    def __init__(
        self,
        insight: Union[Insight, Mapping[str, Any], None] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
    ):
        super().__init__(api_key="mock-key")
        self.insight = insight if insight is not None else {"sentiment": "neutral", "urgency": "normal"}
        self.error = error
        self.delay = delay
        self.calls: list[ResponseSnapshot] = []

    async def complete(self, prompt_input, max_tokens=None) -> Dict[str, Any]:
        prompt = _normalize_prompt(prompt_input)
        if not prompt:
            raise InsightInvalidPrompt()
        if self.error:
            raise self.error
        text = json.dumps(self._insight_dict())
        return {"text": text, "usage": {"prompt_tokens": math.ceil(len(prompt) / 4),
                                        "completion_tokens": math.ceil(len(text) / 4)}}

    async def analyze(self, response: ResponseSnapshot) -> Insight:
        self.calls.append(response)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error:
            raise self.error
        logger.info(f"Mock insight for response {response.id}")
        return Insight.model_validate(self._insight_dict())

    def _insight_dict(self) -> Dict[str, Any]:
        if isinstance(self.insight, Insight):
            return self.insight.model_dump(mode="json", by_alias=True)
        return dict(self.insight)


insight_provider = InsightProvider()


async def get_insight_provider() -> InsightProvider:
    """Dependency injection for the insight provider."""
    return insight_provider
