"""Unit tests for the HTTP adapters' shared handling and the document store client."""

from datetime import datetime, timezone
from unittest.mock import Mock

import pytest
import requests

from docnotify.adapters import (
    AdapterAuthenticationError,
    AdapterConfigurationError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
    DocumentStoreAdapter,
)
from docnotify.adapters.base import BaseAdapter
from docnotify.adapters.document_store import convert_search_result
from docnotify.config.models import DocumentStoreConfig

SINCE = datetime(2025, 1, 1, tzinfo=timezone.utc)
UNTIL = datetime(2025, 1, 2, 6, 0, tzinfo=timezone.utc)


# ============================================================================
# Fixtures
# ============================================================================


@pytest.fixture
def store_config():
    return DocumentStoreConfig(
        service_url="https://docs.example.com/api",
        document_types=["Quarterly Report", "Statement"],
        page_size=2,
        timeout="30s",
    )


def make_response(payload=None, status_code=200, reason="OK", content=b"{}"):
    response = Mock()
    response.status_code = status_code
    response.reason = reason
    response.content = content
    response.json.return_value = payload
    return response


def make_session(*responses):
    session = Mock()
    session.headers = {}
    session.request.side_effect = list(responses)
    return session


def result(document_id, portfolio_id="P1", name="Report", date="2025-01-01", reference=None):
    metadata = [{"name": "Document Date", "value": date}, {"name": "Document Type", "value": "Statement"}]
    if portfolio_id is not None:
        metadata.append({"name": "Portfolio ID", "value": portfolio_id})
    if reference is not None:
        metadata.append({"name": "REFERENCE", "value": reference})
    return {"documentId": document_id, "name": name, "metadata": metadata}


# ============================================================================
# Base Adapter Tests
# ============================================================================


class TestBaseAdapter:
    """Tests for BaseAdapter request handling."""

    class PingAdapter(BaseAdapter):
        def ping(self):
            return self._make_request("https://example.com/ping")

    def test_cannot_instantiate_abstract_class(self):
        with pytest.raises(TypeError):
            BaseAdapter()

    @pytest.mark.parametrize("timeout", [0, 3601])
    def test_timeout_range(self, timeout):
        with pytest.raises(AdapterConfigurationError):
            self.PingAdapter(timeout=timeout, session=make_session())

    def test_empty_user_agent(self):
        with pytest.raises(AdapterConfigurationError):
            self.PingAdapter(user_agent="  ", session=make_session())

    def test_sets_user_agent_header(self):
        session = make_session(make_response({"ok": True}))
        adapter = self.PingAdapter(user_agent="Tester/2.0", session=session)

        assert adapter.ping() == {"ok": True}
        kwargs = session.request.call_args.kwargs
        assert kwargs["headers"]["User-Agent"] == "Tester/2.0"
        assert kwargs["timeout"] == 300

    @pytest.mark.parametrize("status", [401, 403])
    def test_auth_errors(self, status):
        adapter = self.PingAdapter(session=make_session(make_response(status_code=status, reason="Denied")))
        with pytest.raises(AdapterAuthenticationError):
            adapter.ping()

    def test_http_error_carries_status(self):
        adapter = self.PingAdapter(
            session=make_session(make_response(status_code=503, reason="Unavailable"))
        )
        with pytest.raises(AdapterHTTPError) as exc_info:
            adapter.ping()
        assert exc_info.value.status_code == 503

    def test_timeout(self):
        session = make_session(requests.exceptions.Timeout("slow"))
        with pytest.raises(AdapterTimeoutError):
            self.PingAdapter(session=session).ping()

    def test_connection_error(self):
        session = make_session(requests.exceptions.ConnectionError("refused"))
        with pytest.raises(AdapterHTTPError) as exc_info:
            self.PingAdapter(session=session).ping()
        assert exc_info.value.status_code == 0

    def test_invalid_json(self):
        response = make_response(content=b"<html>")
        response.json.side_effect = ValueError("not json")
        with pytest.raises(AdapterResponseError):
            self.PingAdapter(session=make_session(response)).ping()

    def test_empty_body_returns_empty_dict(self):
        adapter = self.PingAdapter(session=make_session(make_response(content=b"")))
        assert adapter.ping() == {}


# ============================================================================
# Result conversion
# ============================================================================


class TestConvertSearchResult:
    """Tests for converting search results to records."""

    def test_metadata_is_case_insensitive(self):
        record = convert_search_result(result("D1", portfolio_id=" P7 ", date="2025-03-04"))

        assert record.document_id == "D1"
        assert record.portfolio_id == "P7"
        assert record.document_type == "Statement"
        assert record.document_date == datetime(2025, 3, 4, tzinfo=timezone.utc)

    def test_empty_name_falls_back_to_reference(self):
        record = convert_search_result(result("D1", name="", reference="REF-9"))
        assert record.name == "REF-9"

    def test_unparseable_date_is_none(self):
        record = convert_search_result(result("D1", date="someday"))
        assert record.document_date is None

    def test_missing_id_is_invalid(self):
        with pytest.raises(ValueError):
            convert_search_result({"name": "x", "metadata": []})


# ============================================================================
# Search
# ============================================================================


class TestDocumentStoreSearch:
    """Tests for DocumentStoreAdapter.search pagination and filtering."""

    def test_single_page(self, store_config):
        session = make_session(
            make_response({"results": [result("D1")], "totalCount": 1, "searchId": "s-1"})
        )
        adapter = DocumentStoreAdapter(store_config, session=session)

        records = adapter.search(SINCE, UNTIL)

        assert [r.document_id for r in records] == ["D1"]
        assert session.request.call_count == 1
        kwargs = session.request.call_args.kwargs
        assert kwargs["url"] == "https://docs.example.com/api/SearchWithResults"
        assert kwargs["method"] == "POST"
        assert kwargs["auth"] is None
        assert kwargs["timeout"] == 30
        body = kwargs["json"]
        assert body["maxResults"] == 2
        assert body["searchCriteria"]["fromDate"] == "2025-01-01T00:00:00Z"
        assert body["searchCriteria"]["toDate"] == "2025-01-02T06:00:00Z"
        assert body["searchCriteria"]["metadataFields"] == [
            {"fieldName": "Document Type", "value": "Quarterly Report", "operation": "Equals"},
            {"fieldName": "Document Type", "value": "Statement", "operation": "Equals"},
        ]

    def test_follows_pages_until_total_count(self, store_config):
        session = make_session(
            make_response({"results": [result("D1"), result("D2")], "totalCount": 5, "searchId": "s-1"}),
            make_response({"results": [result("D3"), result("D4")], "totalCount": 5, "hasMore": True}),
            make_response({"results": [result("D5")], "totalCount": 5, "hasMore": False}),
        )
        adapter = DocumentStoreAdapter(store_config, session=session)

        records = adapter.search(SINCE)

        assert [r.document_id for r in records] == ["D1", "D2", "D3", "D4", "D5"]
        second = session.request.call_args_list[1].kwargs
        assert second["url"] == "https://docs.example.com/api/GetSearchResults"
        assert second["json"] == {"searchId": "s-1", "startIndex": 2, "maxResults": 2}
        assert "toDate" not in session.request.call_args_list[0].kwargs["json"]["searchCriteria"]

    def test_stops_on_empty_page(self, store_config):
        session = make_session(
            make_response({"results": [result("D1"), result("D2")], "totalCount": 10, "searchId": "s-1"}),
            make_response({"results": [], "totalCount": 10}),
        )
        records = DocumentStoreAdapter(store_config, session=session).search(SINCE)

        assert len(records) == 2
        assert session.request.call_count == 2

    def test_stops_when_has_more_is_false(self, store_config):
        session = make_session(
            make_response({"results": [result("D1"), result("D2")], "totalCount": 10, "searchId": "s-1"}),
            make_response({"results": [result("D3")], "totalCount": 10, "hasMore": False}),
        )
        records = DocumentStoreAdapter(store_config, session=session).search(SINCE)

        assert len(records) == 3
        assert session.request.call_count == 2

    def test_skips_records_without_portfolio_and_invalid_records(self, store_config):
        session = make_session(
            make_response(
                {
                    "results": [result("D1", portfolio_id=None), {"name": "no id"}, result("D3")],
                    "totalCount": 3,
                }
            )
        )
        records = DocumentStoreAdapter(store_config, session=session).search(SINCE)

        assert [r.document_id for r in records] == ["D3"]

    def test_explicit_document_types(self, store_config):
        session = make_session(make_response({"results": [], "totalCount": 0}))
        DocumentStoreAdapter(store_config, session=session).search(SINCE, document_types=["Letter"])

        fields = session.request.call_args.kwargs["json"]["searchCriteria"]["metadataFields"]
        assert [f["value"] for f in fields] == ["Letter"]

    def test_basic_auth_when_credentials_set(self, store_config):
        session = make_session(make_response({"results": [], "totalCount": 0}))
        adapter = DocumentStoreAdapter(store_config, username="svc", password="pw", session=session)

        adapter.search(SINCE)

        assert session.request.call_args.kwargs["auth"] == ("svc", "pw")

    def test_non_object_response(self, store_config):
        session = make_session(make_response(["unexpected"]))
        with pytest.raises(AdapterResponseError):
            DocumentStoreAdapter(store_config, session=session).search(SINCE)

    def test_http_errors_propagate(self, store_config):
        session = make_session(make_response(status_code=500, reason="Server Error"))
        with pytest.raises(AdapterHTTPError):
            DocumentStoreAdapter(store_config, session=session).search(SINCE)

    def test_ping(self, store_config):
        session = make_session(make_response(content=b""))
        DocumentStoreAdapter(store_config, session=session).ping()

        kwargs = session.request.call_args.kwargs
        assert kwargs["url"] == "https://docs.example.com/api/Ping"
        assert kwargs["method"] == "GET"
