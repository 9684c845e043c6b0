"""
Zotero Local API client

Talks to the HTTP API exposed by the running Zotero desktop app
(default http://127.0.0.1:23119). Every request is tried directly first and,
when a host proxy is configured, retried through it.
"""

import json
import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote, urlencode

import requests

from zotero_md_export.exceptions import MalformedResponseError, ZoteroHTTPError
from zotero_md_export.fallback import try_in_order

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "http://127.0.0.1:23119"
LIBRARY_PREFIX = "/api/users/0"
CHILDREN_LIMIT = 200
SEARCH_LIMIT = 75

JSON_ACCEPT = "application/json"
TEXT_ACCEPT = "text/plain, application/json"
IMAGE_ACCEPT = "image/png, application/octet-stream;q=0.9, */*;q=0.8"


def shape_item(raw: Any) -> Dict[str, Any]:
    """
    Validate one API record and reduce it to ``key``/``data``/``meta``.

    Raises:
        MalformedResponseError: If the record is not an object or has no key
    """
    if not isinstance(raw, dict):
        raise MalformedResponseError("Unexpected Zotero response item shape.")

    key = str(raw.get('key') or '')
    if not key:
        raise MalformedResponseError("Zotero response item is missing key.")

    data = raw.get('data') if isinstance(raw.get('data'), dict) else {}
    meta = raw.get('meta') if isinstance(raw.get('meta'), dict) else {}
    return {"key": key, "data": data, "meta": meta}


def shape_item_list(raw: Any) -> List[Dict[str, Any]]:
    """Validate a list payload; the local API returns lists unwrapped."""
    if not isinstance(raw, list):
        raise MalformedResponseError(
            f"Expected a list from Zotero, got {type(raw).__name__}."
        )
    return [shape_item(entry) for entry in raw]


class ZoteroLocalAPI:
    """Class to interact with Zotero's local API"""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, api_key: str = "",
                 proxy_url: str = "", timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        """
        Initialize the Zotero Local API client

        Args:
            base_url: Base URL for Zotero local API (default: http://127.0.0.1:23119)
            api_key: Optional key sent as Zotero-API-Key
            proxy_url: Optional host proxy used when a direct request fails
            timeout: HTTP request timeout in seconds
            session: Optional pre-built session for direct requests
        """
        self.base_url = (base_url or '').strip().rstrip('/') or DEFAULT_BASE_URL
        self.api_key = (api_key or '').strip()
        self.proxy_url = (proxy_url or '').strip()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.proxy_session = None
        if self.proxy_url:
            self.proxy_session = requests.Session()
            self.proxy_session.trust_env = False
            self.proxy_session.proxies = {"http": self.proxy_url, "https": self.proxy_url}

    def fork(self) -> "ZoteroLocalAPI":
        """A client with the same settings and its own sessions, for use on another thread."""
        return self.__class__(
            base_url=self.base_url,
            api_key=self.api_key,
            proxy_url=self.proxy_url,
            timeout=self.timeout,
        )

    def close(self) -> None:
        self.session.close()
        if self.proxy_session is not None:
            self.proxy_session.close()

    def _headers(self, accept: str) -> Dict[str, str]:
        headers = {"Accept": accept}
        if self.api_key:
            headers["Zotero-API-Key"] = self.api_key
        return headers

    def _get(self, session: requests.Session, url: str, accept: str) -> requests.Response:
        try:
            response = session.get(url, headers=self._headers(accept), timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            raise ZoteroHTTPError(f"Error making request to {url}: {e}") from e

        if not response.ok:
            body = response.text.strip()
            raise ZoteroHTTPError(
                f"Zotero HTTP {response.status_code}: {body or 'request failed'}",
                status_code=response.status_code,
            )
        return response

    def _with_proxy_fallback(self, url: str, read):
        """
        Run ``read(session)`` directly, then through the host proxy.

        Args:
            url: Requested URL, for error messages
            read: Callable taking a session and returning the parsed payload
        """
        strategies = [("direct", lambda: read(self.session))]
        if self.proxy_session is not None:
            strategies.append(("proxy", lambda: read(self.proxy_session)))
        return try_in_order(f"GET {url}", strategies, error_cls=ZoteroHTTPError)

    def _make_request(self, endpoint: str) -> Any:
        """
        Make a GET request to the Zotero local API and decode JSON.

        Args:
            endpoint: API endpoint (will be joined with base_url)

        Returns:
            Decoded JSON payload

        Raises:
            ZoteroHTTPError: If every transport failed
        """
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        def read(session):
            response = self._get(session, url, JSON_ACCEPT)
            try:
                return response.json()
            except (json.JSONDecodeError, ValueError) as e:
                raise MalformedResponseError(f"Error parsing JSON response from {url}: {e}") from e

        return self._with_proxy_fallback(url, read)

    def _make_text_request(self, endpoint: str) -> str:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"
        return self._with_proxy_fallback(
            url, lambda session: self._get(session, url, TEXT_ACCEPT).text
        )

    def _make_bytes_request(self, endpoint: str) -> bytes:
        url = f"{self.base_url}/{endpoint.lstrip('/')}"

        def read(session):
            content = self._get(session, url, IMAGE_ACCEPT).content
            if not content:
                raise ZoteroHTTPError(f"Empty response body from {url}")
            return content

        return self._with_proxy_fallback(url, read)

    def ping(self) -> str:
        """Body of the connector ping endpoint."""
        return self._make_text_request("/connector/ping")

    def get_items(self, limit: int = 25, **params: str) -> List[Dict[str, Any]]:
        """
        Get items from the personal library

        Args:
            limit: Maximum number of items to return
            **params: Extra query parameters (e.g. itemType, parentItem, q)

        Returns:
            List of item dictionaries
        """
        query = {"limit": str(limit)}
        query.update({name: value for name, value in params.items() if value})
        return shape_item_list(self._make_request(f"{LIBRARY_PREFIX}/items?{urlencode(query)}"))

    def search_items(self, query: str) -> List[Dict[str, Any]]:
        """Items whose title, creator or year matches, sorted by title."""
        params = {"sort": "title", "direction": "asc"}
        term = (query or '').strip()
        if term:
            params.update({"q": term, "qmode": "titleCreatorYear"})
        return self.get_items(limit=SEARCH_LIMIT, **params)

    def get_item(self, item_id: str) -> Dict[str, Any]:
        """
        Get a single item by key

        Raises:
            ZoteroHTTPError: If the request failed
            MalformedResponseError: If the payload is not an item
        """
        return shape_item(self._make_request(f"{LIBRARY_PREFIX}/items/{quote(item_id, safe='')}"))

    def get_items_by_parent(self, parent_key: str, item_type: Optional[str] = None) -> List[Dict[str, Any]]:
        """Children of an item via the ``parentItem`` query."""
        return self.get_items(limit=CHILDREN_LIMIT, parentItem=parent_key, itemType=item_type or '')

    def get_item_children(self, item_id: str) -> List[Dict[str, Any]]:
        """
        Get all children of an item (attachments, notes, annotations)

        Some local API builds answer the ``parentItem`` query more reliably
        than the children endpoint, so that query is the fallback.
        """
        endpoint = f"{LIBRARY_PREFIX}/items/{quote(item_id, safe='')}/children?limit={CHILDREN_LIMIT}"
        try:
            return shape_item_list(self._make_request(endpoint))
        except (ZoteroHTTPError, MalformedResponseError) as e:
            logger.debug("Children endpoint failed for %s (%s); using parentItem query", item_id, e)
            return self.get_items_by_parent(item_id)

    def get_item_file(self, item_id: str, view: bool = False,
                      annotation_key: Optional[str] = None) -> bytes:
        """
        Raw bytes of an item's file endpoint.

        Args:
            item_id: Item (attachment or annotation) key
            view: Use the ``/file/view`` variant
            annotation_key: Optional annotation hint passed as a query parameter
        """
        endpoint = f"{LIBRARY_PREFIX}/items/{quote(item_id, safe='')}/file"
        if view:
            endpoint += "/view"
        if annotation_key:
            endpoint += f"?annotation={quote(annotation_key, safe='')}"
        return self._make_bytes_request(endpoint)
