# tests/test_provider.py
from unittest.mock import MagicMock

import pytest
import requests

from listing_pipeline.models import Operation
from listing_pipeline.provider import ApifyProvider, JobStatus, ProviderError, ProviderUnavailable, job_input
from listing_pipeline.schemas import ZoneSpec


def response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    resp.raise_for_status.return_value = None
    return resp


def http_error(code):
    resp = MagicMock()
    resp.status_code = code
    resp.raise_for_status.side_effect = requests.HTTPError(f"{code} Error", response=resp)
    return resp


def provider_with(*payloads, page_size=1000):
    session = MagicMock()
    session.headers = {}
    session.request.side_effect = [p if isinstance(p, MagicMock) else response(p) for p in payloads]
    return ApifyProvider(token="t0k", actor_id="actor", base_url="https://api.test/v2", page_size=page_size, session=session), session


def test_requires_token():
    with pytest.raises(ProviderError):
        ApifyProvider(token="")


def test_job_input_prefers_start_url():
    by_url = ZoneSpec(name="nerja", operation=Operation.SALE, start_url="https://x/nerja/", max_items=300)
    by_name = ZoneSpec(name="madrid", operation=Operation.RENT, max_items=100)
    assert job_input(by_url) == {"startUrls": [{"url": "https://x/nerja/"}], "maxItems": 301}
    assert job_input(by_name)["locationName"] == "madrid"
    assert job_input(by_name)["operation"] == "rent"
    assert job_input(by_name)["userType"] == "private"


def test_submit_and_status_mapping():
    provider, session = provider_with(
        {"data": {"id": "run1", "defaultDatasetId": "ds1"}},
        {"data": {"status": "RUNNING"}},
        {"data": {"status": "SUCCEEDED"}},
        {"data": {"status": "ABORTED"}},
        {"data": {"status": "TIMED-OUT"}},
    )
    z = ZoneSpec(name="malaga", operation=Operation.SALE)
    assert provider.submit_job(z) == "run1"
    assert session.headers["Authorization"] == "Bearer t0k"
    assert [provider.get_job_status("run1") for _ in range(4)] == [
        JobStatus.PENDING, JobStatus.SUCCEEDED, JobStatus.FAILED, JobStatus.FAILED,
    ]
    method, url = session.request.call_args_list[0].args
    assert (method, url) == ("POST", "https://api.test/v2/acts/actor/runs")


def test_fetch_results_drains_every_page():
    provider, session = provider_with(
        {"data": {"id": "run1", "defaultDatasetId": "ds1"}},
        [{"id": 1}, {"id": 2}],
        [{"id": 3}, {"id": 4}],
        [{"id": 5}],
        page_size=2,
    )
    provider.submit_job(ZoneSpec(name="a", operation=Operation.SALE))
    items = provider.fetch_results("run1")
    assert [i["id"] for i in items] == [1, 2, 3, 4, 5]
    offsets = [c.kwargs["params"]["offset"] for c in session.request.call_args_list[1:]]
    assert offsets == [0, 2, 4]


def test_fetch_results_stops_at_limit():
    provider, session = provider_with(
        {"data": {"defaultDatasetId": "ds9"}},
        [{"id": 1}, {"id": 2}],
        [{"id": 3}],
        page_size=2,
    )
    items = provider.fetch_results("run9", limit=3)
    assert len(items) == 3
    assert session.request.call_args_list[-1].kwargs["params"]["limit"] == 1


def test_non_list_dataset_page_is_an_error():
    provider, _ = provider_with({"error": "nope"})
    with pytest.raises(ProviderError):
        provider.fetch_dataset("ds1")


def test_client_errors_are_not_retried(monkeypatch):
    sleeps = []
    monkeypatch.setattr("listing_pipeline.utils.time.sleep", sleeps.append)
    provider, session = provider_with(http_error(403))
    with pytest.raises(ProviderError) as err:
        provider.submit_job(ZoneSpec(name="a", operation=Operation.SALE))
    assert not isinstance(err.value, ProviderUnavailable)
    assert session.request.call_count == 1
    assert sleeps == []


def test_server_errors_are_retried(monkeypatch):
    sleeps = []
    monkeypatch.setattr("listing_pipeline.utils.time.sleep", sleeps.append)
    provider, session = provider_with(http_error(502), http_error(429), {"data": {"status": "SUCCEEDED"}})
    assert provider.get_job_status("run1") is JobStatus.SUCCEEDED
    assert session.request.call_count == 3
    assert sleeps == [2, 4]


def test_connection_errors_are_retried_then_raised(monkeypatch):
    monkeypatch.setattr("listing_pipeline.utils.time.sleep", lambda s: None)
    provider, session = provider_with()
    session.request.side_effect = requests.ConnectionError("reset")
    with pytest.raises(requests.ConnectionError):
        provider.get_job_status("run1")
    assert session.request.call_count == 3
