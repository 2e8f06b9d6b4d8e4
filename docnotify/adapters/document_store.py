"""Document store adapter.

Queries the document store search API for documents of the configured types
created inside a poll window. The API paginates through a server-side search
handle:

    POST {service_url}/SearchWithResults   -> {"results", "totalCount", "searchId"}
    POST {service_url}/GetSearchResults    -> {"results", "totalCount", "hasMore"}

Each result carries ``documentId``, ``name`` and a ``metadata`` list of
``{"name", "value"}`` pairs.
"""

from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import requests

from docnotify.config.models import DocumentStoreConfig
from docnotify.domain.models import DocumentRecord
from docnotify.logging import get_logger
from docnotify.utils.timestamps import format_timestamp, parse_iso_datetime

from .base import BaseAdapter
from .exceptions import AdapterResponseError

logger = get_logger(__name__, component="document_store")

DOCUMENT_TYPE_FIELD = "Document Type"


class DocumentStoreAdapter(BaseAdapter):
    """Client for the document store search API."""

    def __init__(
        self,
        config: DocumentStoreConfig,
        username: Optional[str] = None,
        password: Optional[str] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        super().__init__(
            timeout=config.timeout_seconds,
            user_agent=config.user_agent,
            session=session,
        )
        self.service_url = config.service_url
        self.page_size = config.page_size
        self.document_types = list(config.document_types)
        self._auth: Optional[Tuple[str, str]] = (
            (username, password or "") if username else None
        )

    def search(
        self,
        since: datetime,
        until: Optional[datetime] = None,
        document_types: Optional[List[str]] = None,
    ) -> List[DocumentRecord]:
        """Return every document of the given types created in ``[since, until)``.

        Pagination is followed until ``totalCount`` is reached, the server
        reports ``hasMore`` false, or an empty page comes back.

        Args:
            since: Lower bound of the window
            until: Upper bound of the window (open when None)
            document_types: Types to match; defaults to the configured types

        Returns:
            Converted document records; records without a portfolio id or
            that fail conversion are skipped

        Raises:
            AdapterError: On HTTP, timeout or response errors
        """
        types = list(document_types) if document_types is not None else self.document_types

        logger.info(
            f"Searching documents since {format_timestamp(since)}",
            extra={
                "event": "document_store.search.started",
                "since": format_timestamp(since),
                "until": format_timestamp(until) if until else None,
                "document_types": types,
            },
        )

        criteria: Dict[str, Any] = {
            "fromDate": format_timestamp(since),
            "metadataFields": [
                {"fieldName": DOCUMENT_TYPE_FIELD, "value": t, "operation": "Equals"}
                for t in types
            ],
        }
        if until is not None:
            criteria["toDate"] = format_timestamp(until)

        first_page = self._post(
            "SearchWithResults",
            {"searchCriteria": criteria, "maxResults": self.page_size},
        )
        results = self._results(first_page)
        total_count = _as_int(first_page.get("totalCount"), default=len(results))
        search_id = first_page.get("searchId")

        logger.info(
            f"Initial search returned {len(results)} of {total_count} documents",
            extra={
                "event": "document_store.search.page",
                "page_count": len(results),
                "total_count": total_count,
            },
        )

        documents = self._convert(results)
        fetched = len(results)

        while fetched < total_count and search_id:
            page = self._post(
                "GetSearchResults",
                {"searchId": search_id, "startIndex": fetched, "maxResults": self.page_size},
            )
            page_results = self._results(page)
            if not page_results:
                break

            documents.extend(self._convert(page_results))
            fetched += len(page_results)

            logger.debug(
                f"Retrieved page, processed {fetched} of {total_count} documents",
                extra={
                    "event": "document_store.search.page",
                    "fetched": fetched,
                    "total_count": total_count,
                },
            )

            if not page.get("hasMore", True):
                break

        logger.info(
            f"Completed document search, found {len(documents)} documents",
            extra={"event": "document_store.search.completed", "document_count": len(documents)},
        )
        return documents

    def ping(self) -> None:
        """Check that the document store answers.

        Raises:
            AdapterError: If the service cannot be reached
        """
        self._make_request(f"{self.service_url}/Ping", method="GET", auth=self._auth)

    def _post(self, operation: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        data = self._make_request(
            f"{self.service_url}/{operation}",
            method="POST",
            json_data=payload,
            auth=self._auth,
        )
        if not isinstance(data, dict):
            raise AdapterResponseError(
                f"Unexpected response from {operation}: expected object, got {type(data).__name__}"
            )
        return data

    @staticmethod
    def _results(page: Dict[str, Any]) -> List[Dict[str, Any]]:
        results = page.get("results") or []
        if not isinstance(results, list):
            raise AdapterResponseError("Search response 'results' is not a list")
        return results

    def _convert(self, results: Iterable[Dict[str, Any]]) -> List[DocumentRecord]:
        documents: List[DocumentRecord] = []

        for result in results:
            document_id = result.get("documentId") if isinstance(result, dict) else None
            try:
                record = convert_search_result(result)
            except Exception as e:
                logger.error(
                    f"Error converting document result {document_id}: {e}",
                    extra={
                        "event": "document_store.result.invalid",
                        "document_id": document_id,
                        "error_type": type(e).__name__,
                    },
                )
                continue

            if not record.has_portfolio:
                logger.warning(
                    f"Document {record.document_id} missing Portfolio ID, skipping",
                    extra={
                        "event": "document_store.result.skipped",
                        "document_id": record.document_id,
                        "reason": "missing_portfolio_id",
                    },
                )
                continue

            documents.append(record)

        return documents


def convert_search_result(result: Dict[str, Any]) -> DocumentRecord:
    """Convert one search result to a DocumentRecord.

    Metadata names are matched case-insensitively. An empty document name
    falls back to the ``Reference`` metadata value. Unparseable document
    dates become None.
    """
    fields: Dict[str, Optional[str]] = {}
    for item in result.get("metadata") or []:
        name = str(item.get("name") or "").strip().lower()
        fields[name] = item.get("value")

    name = (result.get("name") or "").strip()
    reference = (fields.get("reference") or "").strip()
    if not name and reference:
        name = reference

    raw_date = fields.get("document date")
    return DocumentRecord(
        document_id=str(result.get("documentId") or ""),
        name=name,
        document_date=parse_iso_datetime(raw_date) if raw_date else None,
        portfolio_id=fields.get("portfolio id"),
        document_type=fields.get("document type"),
    )


def _as_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default
