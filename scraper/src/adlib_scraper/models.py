"""Domain records for creatives, their analysis and scraping jobs.

Documents written to the store keep the camelCase field names shared with
the API layer; datetimes are stored as UTC ISO-8601 strings with microsecond
precision so that string order equals time order in range queries.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from .errors import JobStateError
from .hashing import render_start_date

UTC = getattr(datetime, "UTC", timezone.utc)

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
)
DEFAULT_MAX_PAGES = 10
DEFAULT_DELAY_MS = 2000


class HookType(str, Enum):
    URGENCY = "urgency"
    CURIOSITY = "curiosity"
    FEAR = "fear"
    SOCIAL_PROOF = "social_proof"
    AUTHORITY = "authority"
    SCARCITY = "scarcity"
    BENEFIT = "benefit"
    PROBLEM_SOLUTION = "problem_solution"
    QUESTION = "question"
    STORY = "story"
    LISTICLE = "listicle"
    HOW_TO = "how_to"
    COMPARISON = "comparison"
    TESTIMONIAL = "testimonial"
    DISCOUNT = "discount"
    FREE = "free"
    GUARANTEE = "guarantee"
    LIMITED_TIME = "limited_time"
    EXCLUSIVE = "exclusive"
    TRENDING = "trending"
    NEW = "new"
    OTHER = "other"


class Sentiment(str, Enum):
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UrgencyLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class Platform(str, Enum):
    FACEBOOK = "facebook"
    INSTAGRAM = "instagram"


class CreativeFormat(str, Enum):
    IMAGE = "image"
    VIDEO = "video"
    CAROUSEL = "carousel"


class JobStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (JobStatus.COMPLETED, JobStatus.FAILED)


def utcnow() -> datetime:
    return datetime.now(UTC)


def encode_datetime(value: datetime | None) -> str | None:
    if value is None:
        return None
    return render_start_date(value)


def decode_datetime(value: Any) -> datetime | None:
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=UTC)
    parsed = datetime.fromisoformat(str(value))
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


@dataclass(frozen=True)
class CreativeAnalysis:
    hook_type: HookType
    niche: str
    tags: list[str]
    sentiment: Sentiment
    urgency_level: UrgencyLevel
    emotional_triggers: list[str]
    suggestions: list[str]
    confidence: float
    processed_at: datetime

    @classmethod
    def default(cls, now: datetime | None = None) -> "CreativeAnalysis":
        """Return the deterministic fallback used when classification fails."""

        return cls(
            hook_type=HookType.OTHER,
            niche="unidentified",
            tags=[],
            sentiment=Sentiment.NEUTRAL,
            urgency_level=UrgencyLevel.LOW,
            emotional_triggers=[],
            suggestions=[],
            confidence=0.0,
            processed_at=now or utcnow(),
        )

    def to_document(self) -> dict[str, Any]:
        return {
            "hookType": self.hook_type.value,
            "niche": self.niche,
            "tags": list(self.tags),
            "sentiment": self.sentiment.value,
            "urgencyLevel": self.urgency_level.value,
            "emotionalTriggers": list(self.emotional_triggers),
            "suggestions": list(self.suggestions),
            "confidence": self.confidence,
            "processedAt": encode_datetime(self.processed_at),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "CreativeAnalysis":
        return cls(
            hook_type=HookType(doc["hookType"]),
            niche=doc["niche"],
            tags=list(doc.get("tags") or []),
            sentiment=Sentiment(doc["sentiment"]),
            urgency_level=UrgencyLevel(doc["urgencyLevel"]),
            emotional_triggers=list(doc.get("emotionalTriggers") or []),
            suggestions=list(doc.get("suggestions") or []),
            confidence=float(doc["confidence"]),
            processed_at=decode_datetime(doc["processedAt"]) or utcnow(),
        )


@dataclass
class Creative:
    headline: str
    description: str
    destination_url: str
    call_to_action: str
    start_date: datetime
    page_name: str
    platform: Platform
    format: CreativeFormat
    hash: str
    created_at: datetime
    updated_at: datetime
    id: str = ""
    thumbnail_url: str | None = None
    video_url: str | None = None
    is_active: bool = True
    analysis: CreativeAnalysis | None = None

    def to_document(self) -> dict[str, Any]:
        """Return the stored payload; the identifier is carried separately."""

        return {
            "headline": self.headline,
            "description": self.description,
            "thumbnailUrl": self.thumbnail_url,
            "videoUrl": self.video_url,
            "destinationUrl": self.destination_url,
            "callToAction": self.call_to_action,
            "startDate": encode_datetime(self.start_date),
            "pageName": self.page_name,
            "platform": self.platform.value,
            "format": self.format.value,
            "hash": self.hash,
            "isActive": self.is_active,
            "createdAt": encode_datetime(self.created_at),
            "updatedAt": encode_datetime(self.updated_at),
            "analysis": self.analysis.to_document() if self.analysis else None,
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> "Creative":
        analysis = doc.get("analysis")
        return cls(
            id=doc_id,
            headline=doc.get("headline") or "",
            description=doc.get("description") or "",
            thumbnail_url=doc.get("thumbnailUrl") or None,
            video_url=doc.get("videoUrl") or None,
            destination_url=doc.get("destinationUrl") or "",
            call_to_action=doc.get("callToAction") or "",
            start_date=decode_datetime(doc.get("startDate")) or utcnow(),
            page_name=doc.get("pageName") or "",
            platform=Platform(doc.get("platform") or Platform.FACEBOOK.value),
            format=CreativeFormat(doc.get("format") or CreativeFormat.IMAGE.value),
            hash=doc.get("hash") or "",
            is_active=bool(doc.get("isActive", True)),
            created_at=decode_datetime(doc.get("createdAt")) or utcnow(),
            updated_at=decode_datetime(doc.get("updatedAt")) or utcnow(),
            analysis=CreativeAnalysis.from_document(analysis) if analysis else None,
        )


@dataclass(frozen=True)
class RawAdSnapshot:
    """Fields read from one ad card, before any validation."""

    headline: str = ""
    description: str = ""
    thumbnail_url: str = ""
    video_url: str = ""
    destination_url: str = ""
    call_to_action: str = ""
    page_name: str = ""
    start_date_text: str = ""
    has_carousel: bool = False
    platform: str = Platform.FACEBOOK.value

    @classmethod
    def from_page_payload(cls, payload: dict[str, Any]) -> "RawAdSnapshot":
        def _text(key: str) -> str:
            value = payload.get(key)
            return str(value).strip() if value is not None else ""

        return cls(
            headline=_text("headline"),
            description=_text("description"),
            thumbnail_url=_text("thumbnailUrl"),
            video_url=_text("videoUrl"),
            destination_url=_text("destinationUrl"),
            call_to_action=_text("callToAction"),
            page_name=_text("pageName"),
            start_date_text=_text("startDateText"),
            has_carousel=bool(payload.get("hasCarousel")),
            platform=_text("platform") or Platform.FACEBOOK.value,
        )


@dataclass(frozen=True)
class ScrapingConfig:
    max_pages: int = DEFAULT_MAX_PAGES
    delay_between_requests: int = DEFAULT_DELAY_MS
    use_proxy: bool = False
    user_agent: str = DEFAULT_USER_AGENT
    keywords: tuple[str, ...] = ()
    target_niches: tuple[str, ...] = ()

    def to_document(self) -> dict[str, Any]:
        return {
            "maxPages": self.max_pages,
            "delayBetweenRequests": self.delay_between_requests,
            "useProxy": self.use_proxy,
            "userAgent": self.user_agent,
            "keywords": list(self.keywords),
            "targetNiches": list(self.target_niches),
        }

    @classmethod
    def from_document(cls, doc: dict[str, Any]) -> "ScrapingConfig":
        return cls(
            max_pages=int(doc.get("maxPages") or DEFAULT_MAX_PAGES),
            delay_between_requests=int(doc.get("delayBetweenRequests") or DEFAULT_DELAY_MS),
            use_proxy=bool(doc.get("useProxy", False)),
            user_agent=doc.get("userAgent") or DEFAULT_USER_AGENT,
            keywords=tuple(doc.get("keywords") or ()),
            target_niches=tuple(doc.get("targetNiches") or ()),
        )


@dataclass
class ScrapingJob:
    id: str
    config: ScrapingConfig
    start_time: datetime
    status: JobStatus = JobStatus.PENDING
    end_time: datetime | None = None
    creatives_found: int = 0
    creatives_processed: int = 0
    errors: list[str] = field(default_factory=list)

    @classmethod
    def start(cls, job_id: str, config: ScrapingConfig, now: datetime | None = None) -> "ScrapingJob":
        return cls(id=job_id, config=config, start_time=now or utcnow(), status=JobStatus.RUNNING)

    def _finish(self, status: JobStatus, now: datetime | None) -> None:
        if self.status is not JobStatus.RUNNING:
            raise JobStateError(f"job {self.id} cannot move from {self.status.value} to {status.value}")
        self.status = status
        self.end_time = now or utcnow()

    def mark_completed(self, *, found: int, processed: int, errors: list[str], now: datetime | None = None) -> None:
        self._finish(JobStatus.COMPLETED, now)
        self.creatives_found = found
        self.creatives_processed = processed
        self.errors = list(errors)

    def mark_failed(
        self, message: str, *, found: int, processed: int, errors: list[str] | None = None, now: datetime | None = None
    ) -> None:
        self._finish(JobStatus.FAILED, now)
        self.creatives_found = found
        self.creatives_processed = processed
        self.errors = [*(errors or []), message]

    def to_document(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "status": self.status.value,
            "startTime": encode_datetime(self.start_time),
            "endTime": encode_datetime(self.end_time),
            "creativesFound": self.creatives_found,
            "creativesProcessed": self.creatives_processed,
            "errors": list(self.errors),
            "config": self.config.to_document(),
        }

    @classmethod
    def from_document(cls, doc_id: str, doc: dict[str, Any]) -> "ScrapingJob":
        return cls(
            id=doc_id,
            status=JobStatus(doc.get("status") or JobStatus.PENDING.value),
            start_time=decode_datetime(doc.get("startTime")) or utcnow(),
            end_time=decode_datetime(doc.get("endTime")),
            creatives_found=int(doc.get("creativesFound") or 0),
            creatives_processed=int(doc.get("creativesProcessed") or 0),
            errors=list(doc.get("errors") or []),
            config=ScrapingConfig.from_document(doc.get("config") or {}),
        )


@dataclass(frozen=True)
class SaveResult:
    inserted: int = 0
    updated: int = 0

    @property
    def total(self) -> int:
        return self.inserted + self.updated


__all__ = [
    "Creative",
    "CreativeAnalysis",
    "CreativeFormat",
    "DEFAULT_DELAY_MS",
    "DEFAULT_MAX_PAGES",
    "DEFAULT_USER_AGENT",
    "HookType",
    "JobStatus",
    "Platform",
    "RawAdSnapshot",
    "SaveResult",
    "ScrapingConfig",
    "ScrapingJob",
    "Sentiment",
    "UrgencyLevel",
    "decode_datetime",
    "encode_datetime",
    "utcnow",
]
