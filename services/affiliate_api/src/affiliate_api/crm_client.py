import logging
from typing import Any

import httpx

from affiliate_api.request_id import get_request_id
from affiliate_api.settings import Settings

logger = logging.getLogger(__name__)


class CrmError(Exception):
    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class CrmClient:
    """Thin async client for the CRM contacts and conversations API."""

    def __init__(self, settings: Settings, transport: httpx.AsyncBaseTransport | None = None) -> None:
        self._base_url = settings.ghl_api_base
        self._location_id = settings.ghl_location_id
        self._timeout = settings.ghl_timeout_seconds
        self._headers = {
            "Authorization": f"Bearer {settings.ghl_api_key}",
            "Version": settings.ghl_api_version,
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        self._transport = transport

    async def _request(
        self,
        method: str,
        path: str,
        *,
        params: dict[str, str] | None = None,
        json: dict[str, Any] | None = None,
    ) -> httpx.Response:
        headers = dict(self._headers)
        request_id = get_request_id()
        if request_id != "-":
            headers["X-Request-ID"] = request_id
        try:
            async with httpx.AsyncClient(
                base_url=self._base_url, timeout=self._timeout, transport=self._transport
            ) as client:
                return await client.request(method, path, params=params, json=json, headers=headers)
        except httpx.HTTPError as exc:
            logger.warning("crm transport error method=%s path=%s err=%s", method, path, exc.__class__.__name__)
            raise CrmError(f"crm transport error: {exc.__class__.__name__}") from exc

    @staticmethod
    def _json(resp: httpx.Response) -> dict[str, Any]:
        try:
            data = resp.json()
        except ValueError as exc:
            raise CrmError("crm returned invalid json", resp.status_code) from exc
        if not isinstance(data, dict):
            raise CrmError("crm returned unexpected payload", resp.status_code)
        return data

    async def search_contacts(self, query: str) -> list[dict[str, Any]]:
        resp = await self._request(
            "GET", "/contacts/", params={"locationId": self._location_id, "query": query}
        )
        if resp.status_code != 200:
            raise CrmError(f"crm status {resp.status_code}", resp.status_code)
        contacts = self._json(resp).get("contacts") or []
        if not isinstance(contacts, list):
            raise CrmError("crm returned unexpected payload", resp.status_code)
        return [c for c in contacts if isinstance(c, dict)]

    async def get_contact(self, contact_id: str) -> dict[str, Any] | None:
        resp = await self._request("GET", f"/contacts/{contact_id}")
        if resp.status_code in (400, 404):
            return None
        if resp.status_code != 200:
            raise CrmError(f"crm status {resp.status_code}", resp.status_code)
        contact = self._json(resp).get("contact")
        return contact if isinstance(contact, dict) else None

    async def send_email(self, contact_id: str, subject: str, html: str) -> None:
        resp = await self._request(
            "POST",
            "/conversations/messages",
            json={"type": "Email", "contactId": contact_id, "subject": subject, "html": html},
        )
        if resp.status_code not in (200, 201):
            raise CrmError(f"crm status {resp.status_code}", resp.status_code)
