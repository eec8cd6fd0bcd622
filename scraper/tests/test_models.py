import pytest

from adlib_scraper.errors import JobStateError
from adlib_scraper.models import Creative, CreativeAnalysis, JobStatus, ScrapingConfig, ScrapingJob

from fakes import NOW, make_creative


def test_job_completes_once():
    job = ScrapingJob.start("scraping_1", ScrapingConfig(), NOW)
    assert job.status is JobStatus.RUNNING
    job.mark_completed(found=4, processed=3, errors=["Error scraping keyword 'x': boom"], now=NOW)
    assert job.status is JobStatus.COMPLETED
    assert job.end_time == NOW
    assert job.status.is_terminal
    with pytest.raises(JobStateError):
        job.mark_failed("late failure", found=0, processed=0)


def test_failed_job_keeps_accumulated_errors():
    job = ScrapingJob.start("scraping_2", ScrapingConfig(), NOW)
    job.mark_failed("browser crashed", found=2, processed=2, errors=["first"], now=NOW)
    assert job.errors == ["first", "browser crashed"]
    assert job.creatives_found == 2


def test_job_document_round_trip():
    job = ScrapingJob.start("scraping_3", ScrapingConfig(max_pages=5, keywords=("beleza",)), NOW)
    doc = job.to_document()
    assert doc["startTime"] == "2025-01-15T12:00:00.000000+00:00"
    assert doc["endTime"] is None
    assert doc["config"]["maxPages"] == 5
    assert ScrapingJob.from_document("scraping_3", doc) == job


def test_creative_document_uses_camel_case_and_no_id():
    creative = make_creative(1)
    creative.analysis = CreativeAnalysis.default(NOW)
    doc = creative.to_document()
    assert "id" not in doc
    assert doc["destinationUrl"] == "https://shop.example.com/p/1"
    assert doc["analysis"]["hookType"] == "other"
    restored = Creative.from_document("c1", doc)
    assert restored.id == "c1"
    assert restored.analysis == creative.analysis
    assert restored.start_date == creative.start_date
