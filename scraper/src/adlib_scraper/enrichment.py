"""AI classification of creatives with a guaranteed fallback result.

``EnrichmentService.classify`` never raises for provider problems: transport
errors, empty completions, non-JSON text and payloads that fail validation
all collapse into :meth:`CreativeAnalysis.default`.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Sequence
from dataclasses import dataclass
from datetime import datetime
from typing import Annotated, Any, Protocol

from openai import AsyncOpenAI
from pydantic import BaseModel, ConfigDict, Field, StringConstraints, ValidationError

from .errors import AnalysisError
from .logging import jlog
from .models import Creative, CreativeAnalysis, HookType, Sentiment, UrgencyLevel, utcnow

DEFAULT_MODEL = "gpt-4-turbo-preview"
DEFAULT_MAX_TOKENS = 2000
DEFAULT_TEMPERATURE = 0.3
INSIGHTS_FALLBACK = "Could not generate insights at this time."
SUGGESTIONS_FALLBACK = ["Could not generate suggestions at this time."]

SYSTEM_PROMPT = (
    "You are an expert in Facebook and Instagram ad creatives. Classify the creative you are given: "
    "identify its hook type, niche, sentiment and other relevant characteristics.\n\n"
    "Always answer with a single valid JSON object with these fields:\n"
    f"- hookType: one of {', '.join(h.value for h in HookType)}\n"
    "- niche: the product/service niche\n"
    "- tags: array of short categorization tags\n"
    "- sentiment: positive, negative or neutral\n"
    "- urgencyLevel: low, medium or high\n"
    "- emotionalTriggers: array of emotional triggers used\n"
    "- suggestions: array of improvement suggestions\n"
    "- confidence: your confidence in this analysis, between 0 and 1\n\n"
    "Base the analysis only on the content provided."
)


@dataclass(frozen=True)
class ClassificationRequest:
    model: str
    system: str
    prompt: str
    max_tokens: int = DEFAULT_MAX_TOKENS
    temperature: float = DEFAULT_TEMPERATURE
    json_output: bool = True


class ClassifierClient(Protocol):
    async def complete(self, request: ClassificationRequest) -> str: ...


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


class AnalysisPayload(BaseModel):
    """Shape the provider must return; every field is required.

    Validation is strict: numbers must be JSON numbers and text values must
    not be blank.
    """

    model_config = ConfigDict(extra="ignore", strict=True, str_strip_whitespace=True)

    hookType: HookType
    niche: NonEmptyStr
    tags: list[NonEmptyStr]
    sentiment: Sentiment
    urgencyLevel: UrgencyLevel
    emotionalTriggers: list[NonEmptyStr]
    suggestions: list[NonEmptyStr]
    confidence: float = Field(ge=0.0, le=1.0)


def decode_analysis(text: str | None, *, now: datetime | None = None) -> CreativeAnalysis:
    """Decode and validate a provider completion, or raise AnalysisError."""

    if not text or not text.strip():
        raise AnalysisError("empty completion from classifier")
    try:
        payload = AnalysisPayload.model_validate_json(text)
    except ValidationError as exc:
        raise AnalysisError(f"invalid classifier payload: {exc.error_count()} error(s)") from exc
    return CreativeAnalysis(
        hook_type=payload.hookType,
        niche=payload.niche,
        tags=list(payload.tags),
        sentiment=payload.sentiment,
        urgency_level=payload.urgencyLevel,
        emotional_triggers=list(payload.emotionalTriggers),
        suggestions=list(payload.suggestions),
        confidence=payload.confidence,
        processed_at=now or utcnow(),
    )


def build_analysis_prompt(creative: Creative, *, market: str = "Brazil") -> str:
    return f"""
Analyze the following ad creative:

HEADLINE: {creative.headline}
DESCRIPTION: {creative.description}
CALL TO ACTION: {creative.call_to_action}
PAGE: {creative.page_name}
PLATFORM: {creative.platform.value}
FORMAT: {creative.format.value}
DESTINATION URL: {creative.destination_url}

Identify:
1. The main hook type used
2. The product/service niche
3. Relevant tags for categorization
4. The overall sentiment
5. The level of urgency conveyed
6. Emotional triggers used
7. Suggestions for improvement
8. Your confidence in the analysis

Consider the {market} market and its digital marketing patterns.
""".strip()


class OpenAIClassifier:
    """Chat-completions client that asks for a JSON object response."""

    def __init__(self, *, api_key: str | None, base_url: str | None = None, timeout_s: float = 60.0) -> None:
        self._api_key = api_key
        self._base_url = base_url
        self._timeout_s = timeout_s
        self._client: AsyncOpenAI | None = None

    def _get_client(self) -> AsyncOpenAI:
        if not self._api_key:
            raise AnalysisError("OPENAI_API_KEY is not configured")
        if self._client is None:
            client_kwargs: dict[str, Any] = {"api_key": self._api_key, "timeout": self._timeout_s}
            if self._base_url:
                client_kwargs["base_url"] = self._base_url
            self._client = AsyncOpenAI(**client_kwargs)
        return self._client

    async def complete(self, request: ClassificationRequest) -> str:
        request_kwargs: dict[str, Any] = {
            "model": request.model,
            "messages": [
                {"role": "system", "content": request.system},
                {"role": "user", "content": request.prompt},
            ],
            "max_tokens": request.max_tokens,
            "temperature": request.temperature,
        }
        if request.json_output:
            request_kwargs["response_format"] = {"type": "json_object"}
        completion = await self._get_client().chat.completions.create(**request_kwargs)
        if not completion or not completion.choices:
            raise AnalysisError("no choices returned from classifier")
        text = completion.choices[0].message.content
        if not text:
            raise AnalysisError("no analysis returned from classifier")
        return text


class EnrichmentService:
    def __init__(
        self,
        client: ClassifierClient,
        *,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        temperature: float = DEFAULT_TEMPERATURE,
        delay_ms: int = 1000,
        market: str = "Brazil",
        clock: Callable[[], datetime] = utcnow,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self.client = client
        self.model = model
        self.max_tokens = max_tokens
        self.temperature = temperature
        self.delay_ms = delay_ms
        self.market = market
        self._clock = clock
        self._sleep = sleep

    async def classify(self, creative: Creative) -> CreativeAnalysis:
        """Classify one creative; provider failures yield the default analysis."""

        request = ClassificationRequest(
            model=self.model,
            system=SYSTEM_PROMPT,
            prompt=build_analysis_prompt(creative, market=self.market),
            max_tokens=self.max_tokens,
            temperature=self.temperature,
        )
        try:
            text = await self.client.complete(request)
            analysis = decode_analysis(text, now=self._clock())
        except Exception as exc:
            jlog(
                "warning",
                event="analysis_fallback",
                creative_id=creative.id or None,
                creative_hash=creative.hash,
                error_type=type(exc).__name__,
                error=str(exc),
            )
            return CreativeAnalysis.default(self._clock())
        jlog(
            "info",
            event="analysis_done",
            creative_id=creative.id or None,
            creative_hash=creative.hash,
            hook_type=analysis.hook_type,
            niche=analysis.niche,
            confidence=analysis.confidence,
        )
        return analysis

    async def classify_batch(self, creatives: Sequence[Creative]) -> list[CreativeAnalysis]:
        """Classify sequentially with a fixed pause between provider calls."""

        analyses: list[CreativeAnalysis] = []
        for idx, creative in enumerate(creatives):
            if idx and self.delay_ms:
                await self._sleep(self.delay_ms / 1000.0)
            analyses.append(await self.classify(creative))
        return analyses

    async def generate_trending_insights(self, creatives: Sequence[Creative], *, limit: int = 50) -> str:
        """Summarize trends across the most recent analyzed creatives."""

        recent = [c for c in creatives if c.analysis][:limit]
        if not recent:
            return INSIGHTS_FALLBACK
        lines = []
        for i, c in enumerate(recent, start=1):
            assert c.analysis is not None
            lines.append(
                f"{i}. Headline: {c.headline}\n"
                f"   Hook: {c.analysis.hook_type.value}\n"
                f"   Niche: {c.analysis.niche}\n"
                f"   Tags: {', '.join(c.analysis.tags)}"
            )
        prompt = (
            "Based on the following recent ad creatives, describe emerging trends:\n\n"
            + "\n".join(lines)
            + "\n\nCover: most used hooks, rising niches, emerging patterns, strategic recommendations "
            "and opportunities. Be specific and practical."
        )
        request = ClassificationRequest(
            model=self.model,
            system="You are an expert in digital marketing trend analysis. Give practical, actionable insights.",
            prompt=prompt,
            max_tokens=self.max_tokens,
            temperature=0.7,
            json_output=False,
        )
        try:
            text = await self.client.complete(request)
        except Exception as exc:
            jlog("warning", event="insights_failed", error_type=type(exc).__name__, error=str(exc))
            return INSIGHTS_FALLBACK
        return text.strip() or INSIGHTS_FALLBACK

    async def suggest_improvements(self, creative: Creative) -> list[str]:
        """Return concrete improvement suggestions, one per line of the completion."""

        niche = creative.analysis.niche if creative.analysis else "unidentified"
        hook = creative.analysis.hook_type.value if creative.analysis else "unidentified"
        prompt = (
            "Analyze the following ad creative and suggest specific improvements:\n\n"
            f"HEADLINE: {creative.headline}\n"
            f"DESCRIPTION: {creative.description}\n"
            f"CALL TO ACTION: {creative.call_to_action}\n"
            f"NICHE: {niche}\n"
            f"CURRENT HOOK: {hook}\n\n"
            "Give 5 specific suggestions covering the hook, the headline, the description, the CTA "
            "and conversion."
        )
        request = ClassificationRequest(
            model=self.model,
            system="You are an expert in ad creative optimization. Give practical, specific suggestions.",
            prompt=prompt,
            max_tokens=1000,
            temperature=0.5,
            json_output=False,
        )
        try:
            text = await self.client.complete(request)
        except Exception as exc:
            jlog("warning", event="suggestions_failed", error_type=type(exc).__name__, error=str(exc))
            return list(SUGGESTIONS_FALLBACK)
        return split_numbered_lines(text)


def split_numbered_lines(text: str) -> list[str]:
    out = []
    for line in text.splitlines():
        cleaned = line.strip()
        if cleaned[:1].isdigit():
            cleaned = cleaned.lstrip("0123456789").lstrip(".)").strip()
        if cleaned:
            out.append(cleaned)
    return out


__all__ = [
    "AnalysisPayload",
    "ClassificationRequest",
    "ClassifierClient",
    "EnrichmentService",
    "OpenAIClassifier",
    "SYSTEM_PROMPT",
    "build_analysis_prompt",
    "decode_analysis",
    "split_numbered_lines",
]
