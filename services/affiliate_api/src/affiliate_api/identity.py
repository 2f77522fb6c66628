import logging
from dataclasses import dataclass, field
from typing import Any

from affiliate_api.crm_client import CrmClient

logger = logging.getLogger(__name__)

# Custom field ids of the affiliate portal's CRM location.
PROFILE_FIELD_IDS = {
    "affiliateCode": "6vixXMn6Co7zax0Z26o8",
    "totalReferrals": "gsv2PY19XMQD02YkmTbL",
    "activeReferrals": "2ZCLdH0fBsHBu859Wg21",
    "totalEarned": "Em7ZiyRxaaXHxZMrmjdQ",
    "pendingPayout": "77WSt5Jt6iVnpqNVfODY",
    "paypalEmail": "eEGPT1Bzyni2KnRBtMk2",
    "tier": "qVmpqD8spvnEz5HA4Xf4",
    "lastPayoutDate": "YgMuqf72R9YFYu5q8m8S",
    "lastPayoutAmount": "A7Xhmqd5fFJi1Lwa4lFU",
}


def normalize_email(email: str) -> str:
    return email.strip().lower()


@dataclass(frozen=True)
class Identity:
    contact_id: str
    email: str
    first_name: str
    last_name: str
    tags: frozenset[str]
    custom_fields: dict[str, Any] = field(default_factory=dict)

    @property
    def display_name(self) -> str:
        return f"{self.first_name} {self.last_name}".strip()

    def field_value(self, field_id: str) -> str:
        value = self.custom_fields.get(field_id)
        if value is None or value == "":
            return ""
        return str(value)

    def profile(self) -> dict[str, str]:
        data = {"name": self.display_name, "email": self.email}
        for key, field_id in PROFILE_FIELD_IDS.items():
            data[key] = self.field_value(field_id)
        return data


def _as_text(value: Any) -> str:
    """CRM fields are loosely typed; anything that isn't text or a number reads as empty."""
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return str(value)
    return ""


def identity_from_contact(contact: dict[str, Any]) -> Identity | None:
    contact_id = _as_text(contact.get("id"))
    if not contact_id:
        return None
    custom_fields = {}
    raw_fields = contact.get("customFields")
    for item in raw_fields if isinstance(raw_fields, list) else []:
        if isinstance(item, dict) and isinstance(item.get("id"), str) and item["id"]:
            custom_fields[item["id"]] = item.get("value")
    raw_tags = contact.get("tags")
    tags = frozenset(t for t in raw_tags if isinstance(t, str)) if isinstance(raw_tags, list) else frozenset()
    return Identity(
        contact_id=contact_id,
        email=normalize_email(_as_text(contact.get("email"))),
        first_name=_as_text(contact.get("firstName")),
        last_name=_as_text(contact.get("lastName")),
        tags=tags,
        custom_fields=custom_fields,
    )


class IdentityResolver:
    """Resolves portal identities against the CRM on every call; nothing is cached."""

    def __init__(self, client: CrmClient, affiliate_tag: str) -> None:
        self._client = client
        self._affiliate_tag = affiliate_tag

    def is_authorized(self, identity: Identity | None) -> bool:
        return identity is not None and self._affiliate_tag in identity.tags

    async def resolve_by_email(self, email: str) -> Identity | None:
        email = normalize_email(email)
        for contact in await self._client.search_contacts(email):
            if normalize_email(_as_text(contact.get("email"))) == email:
                return identity_from_contact(contact)
        return None

    async def resolve_by_contact_id(self, contact_id: str) -> Identity | None:
        contact = await self._client.get_contact(contact_id)
        if contact is None:
            logger.info("crm contact missing contact_id=%s", contact_id)
            return None
        return identity_from_contact(contact)
