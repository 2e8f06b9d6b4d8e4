"""CRM directory adapter.

Resolves portfolio owners from a Dynamics-style OData API. Active contacts
are matched on ``new_portfolioid`` first; portfolios without a contact are
then matched against active accounts. Lookups are chunked into batches that
run concurrently on a bounded thread pool.
"""

import contextvars
import threading
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Iterable, List, Optional

import msal
import requests

from docnotify.config.models import CrmConfig
from docnotify.domain.models import OwnerType, PortfolioOwner
from docnotify.logging import get_logger

from .base import BaseAdapter
from .exceptions import (
    AdapterAuthenticationError,
    AdapterConfigurationError,
    AdapterResponseError,
)

logger = get_logger(__name__, component="crm")

API_PATH = "api/data/v9.2"

CONTACT_COLUMNS = ["contactid", "firstname", "lastname", "emailaddress1", "new_portfolioid"]
ACCOUNT_COLUMNS = [
    "accountid",
    "name",
    "emailaddress1",
    "new_portfolioid",
    "new_contactpersonemail",
]


@dataclass
class OwnerLookup:
    """Outcome of a batched owner lookup.

    ``owners`` maps resolved portfolio ids to their owner; ``failures`` maps
    portfolio ids whose batch failed to the error text. Ids present in
    neither were looked up successfully but have no owner.
    """

    owners: Dict[str, PortfolioOwner] = field(default_factory=dict)
    failures: Dict[str, str] = field(default_factory=dict)


class CrmAdapter(BaseAdapter):
    """Client for the CRM directory."""

    def __init__(
        self,
        config: CrmConfig,
        client_secret: Optional[str] = None,
        token_provider: Optional[Callable[[], str]] = None,
        session: Optional[requests.Session] = None,
    ) -> None:
        """
        Args:
            config: CRM settings
            client_secret: OAuth client secret (CRM_CLIENT_SECRET)
            token_provider: Callable returning a bearer token; replaces the
                msal client-credentials flow when given
            session: Optional pre-built requests session

        Raises:
            AdapterConfigurationError: If the service URL or credentials are missing
        """
        super().__init__(timeout=config.timeout_seconds, session=session)

        if not config.service_url:
            raise AdapterConfigurationError("crm.service_url is required")

        self.service_url = config.service_url
        self.batch_size = config.batch_size
        self.max_concurrent_batches = config.max_concurrent_batches

        if token_provider is None:
            if not config.client_id or not client_secret:
                raise AdapterConfigurationError(
                    "crm.client_id and CRM_CLIENT_SECRET are required for CRM access"
                )
            token_provider = _MsalTokenProvider(
                client_id=config.client_id,
                client_secret=client_secret,
                tenant_id=config.tenant_id,
                resource=config.service_url,
            )
        self._token_provider = token_provider

    def get_owners(self, portfolio_ids: Iterable[str]) -> OwnerLookup:
        """Look up the owners of the given portfolios.

        Ids are de-duplicated and split into batches of ``batch_size``. A
        failed batch marks each of its ids as failed without affecting the
        other batches.
        """
        ids = [p for p in dict.fromkeys(portfolio_ids) if p]
        lookup = OwnerLookup()
        if not ids:
            return lookup

        batches = [ids[i:i + self.batch_size] for i in range(0, len(ids), self.batch_size)]

        logger.info(
            f"Looking up owners for {len(ids)} portfolios in {len(batches)} batches",
            extra={
                "event": "crm.lookup.started",
                "portfolio_count": len(ids),
                "batch_count": len(batches),
            },
        )

        workers = min(self.max_concurrent_batches, len(batches))
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="crm-lookup") as pool:
            futures = [
                (batch, pool.submit(contextvars.copy_context().run, self._lookup_batch, batch))
                for batch in batches
            ]

            for batch, future in futures:
                try:
                    owners = future.result()
                except Exception as e:
                    logger.error(
                        f"Owner lookup failed for batch of {len(batch)} portfolios: {e}",
                        extra={
                            "event": "crm.batch.failed",
                            "batch_size": len(batch),
                            "error_type": type(e).__name__,
                        },
                    )
                    for portfolio_id in batch:
                        lookup.failures[portfolio_id] = f"Owner lookup failed: {e}"
                    continue

                for owner in owners:
                    lookup.owners.setdefault(owner.portfolio_id, owner)

        logger.info(
            f"Resolved owners for {len(lookup.owners)} of {len(ids)} portfolios",
            extra={
                "event": "crm.lookup.completed",
                "resolved": len(lookup.owners),
                "failed": len(lookup.failures),
                "portfolio_count": len(ids),
            },
        )
        return lookup

    def ping(self) -> None:
        """Check that the CRM answers with the current credentials."""
        self._get(f"{self.service_url}/{API_PATH}/WhoAmI")

    def _lookup_batch(self, batch: List[str]) -> List[PortfolioOwner]:
        owners: Dict[str, PortfolioOwner] = {}

        for row in self._query("contacts", CONTACT_COLUMNS, batch):
            owner = _contact_to_owner(row)
            if owner is not None:
                owners.setdefault(owner.portfolio_id, owner)

        remaining = [p for p in batch if p not in owners]
        if remaining:
            for row in self._query("accounts", ACCOUNT_COLUMNS, remaining):
                owner = _account_to_owner(row)
                if owner is not None:
                    owners.setdefault(owner.portfolio_id, owner)

        logger.debug(
            f"Processed batch of {len(batch)} portfolios, found {len(owners)} owners",
            extra={"event": "crm.batch.completed", "batch_size": len(batch), "found": len(owners)},
        )
        return list(owners.values())

    def _query(self, entity_set: str, columns: List[str], portfolio_ids: List[str]) -> List[Dict[str, Any]]:
        id_filter = " or ".join(f"new_portfolioid eq '{_quote(p)}'" for p in portfolio_ids)
        params = {
            "$select": ",".join(columns),
            "$filter": f"statecode eq 0 and ({id_filter})",
        }

        rows: List[Dict[str, Any]] = []
        url: Optional[str] = f"{self.service_url}/{API_PATH}/{entity_set}"
        while url:
            data = self._get(url, params=params)
            value = data.get("value") if isinstance(data, dict) else None
            if not isinstance(value, list):
                raise AdapterResponseError(f"Unexpected {entity_set} response: missing 'value' list")
            rows.extend(value)
            url = data.get("@odata.nextLink")
            # nextLink already carries the query string
            params = None
        return rows

    def _get(self, url: str, params: Optional[Dict[str, str]] = None) -> Any:
        token = self._token_provider()
        return self._make_request(
            url,
            method="GET",
            params=params,
            headers={
                "Authorization": f"Bearer {token}",
                "Accept": "application/json",
                "OData-MaxVersion": "4.0",
                "OData-Version": "4.0",
            },
        )


class _MsalTokenProvider:
    """Client-credentials token source backed by msal's token cache."""

    def __init__(self, client_id: str, client_secret: str, tenant_id: str, resource: str):
        self._app = msal.ConfidentialClientApplication(
            client_id=client_id,
            client_credential=client_secret,
            authority=f"https://login.microsoftonline.com/{tenant_id}",
        )
        self._scopes = [f"{resource}/.default"]
        self._lock = threading.Lock()

    def __call__(self) -> str:
        with self._lock:
            result = self._app.acquire_token_for_client(scopes=self._scopes)

        if "access_token" not in result:
            raise AdapterAuthenticationError(
                f"Failed to acquire CRM token: {result.get('error')}: "
                f"{result.get('error_description', 'no description')}"
            )
        return result["access_token"]


def _contact_to_owner(row: Dict[str, Any]) -> Optional[PortfolioOwner]:
    portfolio_id = (row.get("new_portfolioid") or "").strip()
    if not portfolio_id:
        return None
    return PortfolioOwner(
        portfolio_id=portfolio_id,
        owner_type=OwnerType.CONTACT,
        first_name=row.get("firstname") or "",
        last_name=row.get("lastname") or "",
        email=row.get("emailaddress1") or "",
    )


def _account_to_owner(row: Dict[str, Any]) -> Optional[PortfolioOwner]:
    portfolio_id = (row.get("new_portfolioid") or "").strip()
    if not portfolio_id:
        return None
    return PortfolioOwner(
        portfolio_id=portfolio_id,
        owner_type=OwnerType.ORGANIZATION,
        organization_name=row.get("name") or "",
        email=row.get("emailaddress1") or "",
        contact_person_email=row.get("new_contactpersonemail") or "",
    )


def _quote(value: str) -> str:
    return value.replace("'", "''")
