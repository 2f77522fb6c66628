import html
import logging

from affiliate_api.crm_client import CrmClient, CrmError
from affiliate_api.identity import Identity
from affiliate_api.settings import Settings

logger = logging.getLogger(__name__)


class NotificationError(Exception):
    pass


def build_magic_link(settings: Settings, token: str) -> str:
    return f"{settings.site_url}/affiliate-portal.html?token={token}"


def render_magic_link_email(first_name: str, link: str) -> str:
    name = html.escape(first_name or "there")
    href = html.escape(link, quote=True)
    return f"""
<div style="font-family: Arial, sans-serif; max-width: 500px; margin: 0 auto;">
  <h2 style="color: #14B8A6;">Hi {name}!</h2>
  <p>Click the button below to log in to your affiliate portal:</p>
  <p style="text-align: center; margin: 30px 0;">
    <a href="{href}" style="background: #14B8A6; color: white; padding: 14px 28px; text-decoration: none; border-radius: 6px; font-weight: bold; display: inline-block;">
      Log In to Portal
    </a>
  </p>
  <p style="color: #666; font-size: 14px;">This link expires in 15 minutes.</p>
  <p style="color: #666; font-size: 14px;">If you did not request this, you can safely ignore this email.</p>
  <p style="margin-top: 30px; color: #999; font-size: 12px;">Apex Automation</p>
</div>
""".strip()


class MagicLinkNotifier:
    def __init__(self, settings: Settings, client: CrmClient) -> None:
        self._settings = settings
        self._client = client

    async def send_magic_link(self, identity: Identity, link: str) -> None:
        if self._settings.app_env.lower() == "dev":
            logger.info("magic_link issued contact_id=%s", identity.contact_id)
            return

        body = render_magic_link_email(identity.first_name, link)
        try:
            await self._client.send_email(identity.contact_id, self._settings.email_subject, body)
        except CrmError as exc:
            raise NotificationError("magic link email not sent") from exc
