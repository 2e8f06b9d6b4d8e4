"""Base adapter class with shared HTTP handling for the remote services.

Both the document store client and the CRM directory client speak JSON over
HTTP; this module holds the request, error classification and logging logic
they share.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

import requests

from docnotify.logging import get_logger

from .exceptions import (
    AdapterAuthenticationError,
    AdapterConfigurationError,
    AdapterHTTPError,
    AdapterResponseError,
    AdapterTimeoutError,
)

logger = get_logger(__name__, component="adapter")


class BaseAdapter(ABC):
    """Base class for HTTP/JSON adapters.

    Attributes:
        timeout: HTTP request timeout in seconds
        user_agent: User-Agent header for HTTP requests
    """

    def __init__(
        self,
        timeout: int = 300,
        user_agent: str = "DocumentNotificationService/1.0",
        session: Optional[requests.Session] = None,
    ) -> None:
        """Initialize adapter with configuration.

        Args:
            timeout: HTTP request timeout in seconds (range 1-3600)
            user_agent: User-Agent header for requests
            session: Optional pre-built requests session (used by tests)

        Raises:
            AdapterConfigurationError: If timeout is outside valid range or user_agent is empty
        """
        if not 1 <= timeout <= 3600:
            raise AdapterConfigurationError(
                f"Timeout must be between 1 and 3600 seconds, got: {timeout}"
            )
        if not user_agent or not user_agent.strip():
            raise AdapterConfigurationError("user_agent cannot be empty")

        self.timeout = timeout
        self.user_agent = user_agent.strip()

        self._session = session or requests.Session()
        self._session.headers.update({"User-Agent": self.user_agent})

    @abstractmethod
    def ping(self) -> None:
        """Check that the remote service is reachable.

        Raises:
            AdapterError: If the service cannot be reached
        """
        pass

    def close(self) -> None:
        """Release the underlying HTTP session."""
        self._session.close()

    def _make_request(
        self,
        url: str,
        method: str = "GET",
        headers: Optional[Dict[str, str]] = None,
        params: Optional[Dict[str, str]] = None,
        json_data: Optional[Dict[str, Any]] = None,
        auth: Optional[Tuple[str, str]] = None,
    ) -> Any:
        """Make HTTP request with error handling.

        Args:
            url: URL to request
            method: HTTP method (default "GET")
            headers: Additional headers to include (merged with defaults)
            params: Query parameters
            json_data: JSON body for POST requests
            auth: Optional (username, password) for basic authentication

        Returns:
            Parsed JSON response

        Raises:
            AdapterAuthenticationError: On 401 or 403
            AdapterHTTPError: On other 4xx or 5xx HTTP status or connection failure
            AdapterTimeoutError: On request timeout
            AdapterResponseError: On invalid JSON
        """
        request_headers = self._session.headers.copy()
        if headers:
            request_headers.update(headers)

        try:
            logger.debug(
                f"HTTP {method} request to {url}",
                extra={
                    "event": "adapter.request",
                    "method": method,
                    "url": url,
                    "timeout": self.timeout,
                },
            )

            response = self._session.request(
                method=method,
                url=url,
                headers=request_headers,
                params=params,
                json=json_data,
                auth=auth,
                timeout=self.timeout,
            )

            if response.status_code >= 400:
                is_server_error = response.status_code >= 500
                logger.log(
                    logging.WARNING if is_server_error else logging.ERROR,
                    f"HTTP {response.status_code} error from {url}",
                    extra={
                        "event": "adapter.request.failed",
                        "status_code": response.status_code,
                        "url": url,
                    }
                )

                if response.status_code in (401, 403):
                    raise AdapterAuthenticationError(
                        f"HTTP {response.status_code}: {response.reason} ({url})"
                    )

                raise AdapterHTTPError(
                    f"HTTP {response.status_code}: {response.reason}",
                    status_code=response.status_code,
                    url=url,
                )

            if not response.content:
                return {}

            try:
                data = response.json()
            except (ValueError, requests.exceptions.JSONDecodeError) as e:
                logger.error(
                    f"Failed to parse JSON response from {url}",
                    extra={
                        "event": "adapter.request.failed",
                        "error_type": "JSONDecodeError",
                        "url": url,
                    }
                )
                raise AdapterResponseError(
                    f"Failed to parse JSON response from {url}: {e}"
                ) from e

            logger.debug(
                "HTTP request succeeded",
                extra={
                    "event": "adapter.request.succeeded",
                    "status_code": response.status_code,
                    "url": url,
                }
            )
            return data

        except requests.exceptions.Timeout as e:
            logger.warning(
                f"Request to {url} timed out after {self.timeout} seconds",
                extra={
                    "event": "adapter.request.timeout",
                    "url": url,
                    "timeout": self.timeout,
                }
            )
            raise AdapterTimeoutError(
                f"Request to {url} timed out after {self.timeout} seconds",
                url=url,
            ) from e
        except requests.exceptions.RequestException as e:
            logger.error(
                f"Request to {url} failed: {e}",
                extra={
                    "event": "adapter.request.failed",
                    "error_type": type(e).__name__,
                    "url": url,
                }
            )
            raise AdapterHTTPError(
                f"Request to {url} failed: {e}",
                status_code=0,
                url=url,
            ) from e
