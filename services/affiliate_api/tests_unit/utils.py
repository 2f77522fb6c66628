import re
from datetime import datetime, timedelta, timezone

from affiliate_api.crm_client import CrmError
from affiliate_api.identity import PROFILE_FIELD_IDS

AFFILIATE_TAG = "affiliate-active"
_LINK_TOKEN_RE = re.compile(r"token=([a-z0-9]{64})")


def make_contact(
    contact_id: str,
    email: str,
    first_name: str = "Ada",
    last_name: str = "Lovelace",
    tags: list[str] | None = None,
    fields: dict[str, object] | None = None,
) -> dict:
    fields = fields or {}
    return {
        "id": contact_id,
        "email": email,
        "firstName": first_name,
        "lastName": last_name,
        "tags": [AFFILIATE_TAG] if tags is None else tags,
        "customFields": [
            {"id": PROFILE_FIELD_IDS[key], "value": value} for key, value in fields.items()
        ],
    }


class FakeCrm:
    def __init__(self, contacts: list[dict] | None = None) -> None:
        self.contacts: dict[str, dict] = {c["id"]: c for c in contacts or []}
        self.sent: list[dict] = []
        self.fail_lookups = False
        self.fail_send = False

    def add(self, contact: dict) -> None:
        self.contacts[contact["id"]] = contact

    def set_tags(self, contact_id: str, tags: list[str]) -> None:
        self.contacts[contact_id]["tags"] = tags

    async def search_contacts(self, query: str) -> list[dict]:
        if self.fail_lookups:
            raise CrmError("crm status 503", 503)
        return [
            c for c in self.contacts.values() if isinstance(c.get("email"), str) and query in c["email"].lower()
        ]

    async def get_contact(self, contact_id: str) -> dict | None:
        if self.fail_lookups:
            raise CrmError("crm status 503", 503)
        return self.contacts.get(contact_id)

    async def send_email(self, contact_id: str, subject: str, html: str) -> None:
        if self.fail_send:
            raise CrmError("crm status 500", 500)
        self.sent.append({"contact_id": contact_id, "subject": subject, "html": html})

    def last_link_token(self) -> str:
        match = _LINK_TOKEN_RE.search(self.sent[-1]["html"])
        assert match is not None
        return match.group(1)


class MutableClock:
    def __init__(self, start: datetime | None = None) -> None:
        self.now = start or datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)
