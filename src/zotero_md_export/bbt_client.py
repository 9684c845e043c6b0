"""
Better BibTeX client for Zotero.

Looks up citation keys through the Better BibTeX plugin, which is served
by the same local Zotero HTTP server as the local API.
"""

import json
from typing import Any, List, Optional
from urllib.parse import quote

import requests

from zotero_md_export.api import DEFAULT_BASE_URL
from zotero_md_export.exceptions import MalformedResponseError, ZoteroHTTPError


class BetterBibTexClient:
    """Client for the Better BibTeX JSON-RPC and CAYW endpoints."""

    def __init__(self, base_url: str = DEFAULT_BASE_URL, timeout: float = 30.0,
                 session: Optional[requests.Session] = None):
        self.base_url = (base_url or '').strip().rstrip('/') or DEFAULT_BASE_URL
        self.rpc_url = f"{self.base_url}/better-bibtex/json-rpc"
        self.timeout = timeout
        self.session = session or requests.Session()
        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }

    def _make_request(self, method: str, params: List[Any]) -> Any:
        """Make a JSON-RPC request to BBT."""
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": 1,
        }
        try:
            response = self.session.post(
                self.rpc_url,
                headers=self.headers,
                data=json.dumps(payload),
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ZoteroHTTPError(f"BBT request failed: {e}") from e

        try:
            data = response.json()
        except ValueError as e:
            raise MalformedResponseError(f"BBT returned invalid JSON: {e}") from e

        if not isinstance(data, dict):
            raise MalformedResponseError("BBT returned an unexpected payload.")

        if "error" in data:
            error = data["error"] if isinstance(data["error"], dict) else {}
            error_msg = str(error.get("message", "Unknown error"))
            error_data = error.get("data", "")
            if error_data:
                error_msg += f": {error_data}"
            raise ZoteroHTTPError(f"BBT API error: {error_msg}")

        return data.get("result", {})

    def get_citation_key(self, item_key: str, library_id: int = 1) -> Optional[str]:
        """Resolve a Zotero item key to its BBT citation key via JSON-RPC."""
        full_key = f"{library_id}:{item_key}"
        mapping = self._make_request("item.citationkey", [[full_key]])
        if not isinstance(mapping, dict):
            return None
        value = mapping.get(full_key)
        if isinstance(value, str) and value.strip():
            return value.strip()
        return None

    def get_cayw_citation_key(self, item_key: str) -> Optional[str]:
        """Resolve a citation key through the CAYW text endpoint."""
        url = f"{self.base_url}/better-bibtex/cayw?format=citationkey&key={quote(item_key, safe='')}"
        try:
            response = self.session.get(url, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise ZoteroHTTPError(f"BBT CAYW request failed: {e}") from e

        value = response.text.lstrip('@ \t\r\n').strip()
        return value or None
