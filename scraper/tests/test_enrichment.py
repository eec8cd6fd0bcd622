import asyncio

import pytest

from adlib_scraper.enrichment import EnrichmentService, decode_analysis, split_numbered_lines
from adlib_scraper.errors import AnalysisError
from adlib_scraper.models import CreativeAnalysis, HookType, Sentiment, UrgencyLevel

from fakes import NOW, FailingClassifier, FakeClassifier, analysis_json, make_creative


def _service(client, **kw) -> EnrichmentService:
    return EnrichmentService(client, clock=lambda: NOW, **kw)


def test_classify_parses_valid_payload():
    client = FakeClassifier(analysis_json())
    analysis = asyncio.run(_service(client).classify(make_creative()))
    assert analysis.hook_type is HookType.CURIOSITY
    assert analysis.niche == "fitness"
    assert analysis.tags == ["emagrecimento", "dieta"]
    assert analysis.sentiment is Sentiment.POSITIVE
    assert analysis.urgency_level is UrgencyLevel.MEDIUM
    assert analysis.confidence == pytest.approx(0.82)
    assert analysis.processed_at == NOW
    request = client.requests[0]
    assert "Headline 1" in request.prompt
    assert request.json_output is True


@pytest.mark.parametrize(
    "response",
    [
        "not json",
        "",
        analysis_json(hookType="clickbait"),
        analysis_json(confidence=1.5),
        analysis_json(sentiment=None),
        analysis_json(confidence="0.9"),
        analysis_json(niche="   "),
        analysis_json(tags=[""]),
        analysis_json(emotionalTriggers=["hope", " "]),
        analysis_json(tags="dieta"),
        '{"hookType": "curiosity"}',
    ],
)
def test_classify_falls_back_on_bad_payloads(response):
    analysis = asyncio.run(_service(FakeClassifier(response)).classify(make_creative()))
    assert analysis == CreativeAnalysis.default(NOW)


def test_classify_falls_back_when_provider_fails():
    analysis = asyncio.run(_service(FailingClassifier()).classify(make_creative()))
    assert analysis.hook_type is HookType.OTHER
    assert analysis.niche == "unidentified"
    assert analysis.confidence == 0.0


def test_classify_batch_continues_after_failure_and_paces_calls():
    sleeps = []

    async def _sleep(seconds):
        sleeps.append(seconds)

    client = FakeClassifier(analysis_json(), RuntimeError("timeout"), analysis_json(niche="beauty"))
    service = _service(client, sleep=_sleep, delay_ms=1000)
    creatives = [make_creative(i) for i in range(3)]
    analyses = asyncio.run(service.classify_batch(creatives))
    assert [a.niche for a in analyses] == ["fitness", "unidentified", "beauty"]
    assert sleeps == [1.0, 1.0]


def test_decode_analysis_raises_analysis_error():
    with pytest.raises(AnalysisError):
        decode_analysis('{"hookType": "curiosity"}', now=NOW)
    with pytest.raises(AnalysisError):
        decode_analysis(None, now=NOW)


def test_trending_insights_need_analyzed_creatives():
    service = _service(FakeClassifier("Curiosity hooks dominate."))
    assert asyncio.run(service.generate_trending_insights([make_creative()])).startswith("Could not")

    analyzed = make_creative()
    analyzed.analysis = decode_analysis(analysis_json(), now=NOW)
    assert asyncio.run(service.generate_trending_insights([analyzed])) == "Curiosity hooks dominate."


def test_suggest_improvements_splits_lines_and_falls_back():
    service = _service(FakeClassifier("1. Stronger hook\n2) Shorter headline\n\n3. Clear CTA"))
    assert asyncio.run(service.suggest_improvements(make_creative())) == [
        "Stronger hook",
        "Shorter headline",
        "Clear CTA",
    ]
    fallback = asyncio.run(_service(FailingClassifier()).suggest_improvements(make_creative()))
    assert fallback == ["Could not generate suggestions at this time."]


def test_split_numbered_lines_keeps_plain_lines():
    assert split_numbered_lines("- keep this\n  \n10. tenth") == ["- keep this", "tenth"]


def test_decode_analysis_strips_text_and_accepts_integer_confidence():
    analysis = decode_analysis(analysis_json(niche="  fitness ", tags=[" dieta"], confidence=1), now=NOW)
    assert analysis.niche == "fitness"
    assert analysis.tags == ["dieta"]
    assert analysis.confidence == 1.0
