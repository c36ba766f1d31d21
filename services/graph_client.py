import logging
import threading
import time
from typing import Any, Dict, Optional

import requests

from conversation_manager.errors import CollaboratorError
import config

logger = logging.getLogger(__name__)

GRAPH_SCOPE = "https://graph.microsoft.com/.default"
TOKEN_EXPIRY_MARGIN_SECONDS = 60


class GraphClient:
    """
    Thin Microsoft Graph client using the client-credentials grant.

    Every request carries a timeout; HTTP failures, timeouts and missing
    credentials all surface as CollaboratorError.
    """

    def __init__(
        self,
        tenant_id: Optional[str] = None,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        timeout: float = config.COLLABORATOR_TIMEOUT_SECONDS,
        session: Optional[requests.Session] = None,
    ):
        self.tenant_id = tenant_id or config.GRAPH_TENANT_ID
        self.client_id = client_id or config.GRAPH_CLIENT_ID
        self.client_secret = client_secret or config.GRAPH_CLIENT_SECRET
        self.timeout = timeout
        self.session = session or requests.Session()
        self._token: Optional[str] = None
        self._token_expires_at = 0.0
        self._token_lock = threading.Lock()

    def is_configured(self) -> bool:
        return bool(self.tenant_id and self.client_id and self.client_secret)

    def _get_token(self) -> str:
        if not self.is_configured():
            raise CollaboratorError("Microsoft Graph API credentials not configured")

        with self._token_lock:
            if self._token and time.time() < self._token_expires_at - TOKEN_EXPIRY_MARGIN_SECONDS:
                return self._token

            url = f"{config.GRAPH_AUTHORITY_URL}/{self.tenant_id}/oauth2/v2.0/token"
            data = {
                "client_id": self.client_id,
                "client_secret": self.client_secret,
                "scope": GRAPH_SCOPE,
                "grant_type": "client_credentials",
            }
            try:
                response = self.session.post(url, data=data, timeout=self.timeout)
                response.raise_for_status()
                payload = response.json()
            except requests.exceptions.RequestException as err:
                logger.error("Graph token request failed: %s", err)
                raise CollaboratorError(f"Could not authenticate with Microsoft Graph: {err}") from err

            self._token = payload["access_token"]
            self._token_expires_at = time.time() + float(payload.get("expires_in", 3600))
            return self._token

    def request(
        self,
        method: str,
        path: str,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> Optional[Dict[str, Any]]:
        """Send a Graph request and return the decoded body (None for 202/204)."""
        request_headers = {
            "Authorization": f"Bearer {self._get_token()}",
            "Content-Type": "application/json",
        }
        if headers:
            request_headers.update(headers)

        try:
            response = self.session.request(
                method,
                f"{config.GRAPH_API_BASE_URL}{path}",
                params=params,
                json=json,
                headers=request_headers,
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.exceptions.Timeout as err:
            logger.error("Graph %s %s timed out after %ss", method, path, self.timeout)
            raise CollaboratorError(f"Microsoft Graph timed out after {self.timeout}s") from err
        except requests.exceptions.RequestException as err:
            logger.error("Graph %s %s failed: %s", method, path, err)
            raise CollaboratorError(f"Microsoft Graph request failed: {err}") from err

        if response.status_code in (202, 204) or not response.content:
            return None
        return response.json()

    def get(self, path: str, params: Optional[Dict[str, Any]] = None,
            headers: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        return self.request("GET", path, params=params, headers=headers) or {}

    def post(self, path: str, json: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        return self.request("POST", path, json=json)


# Create a singleton instance
graph_client = GraphClient()
