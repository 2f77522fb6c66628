import logging

import pytest
from pydantic import ValidationError

from affiliate_api.issuer import generate_token
from affiliate_api.logging_config import RedactionFilter, redact_text
from affiliate_api.settings import Settings


def test_redact_text_masks_identities_and_secrets():
    token = generate_token()
    text = redact_text(
        f"user=affiliate@example.com link=https://x.test/p?token={token} "
        "Authorization: Bearer abc.def api_key=sk-123"
    )

    assert "affiliate@example.com" not in text
    assert token not in text
    assert "abc.def" not in text
    assert "sk-123" not in text
    assert "[redacted_email]" in text


def test_redaction_filter_flattens_args():
    record = logging.LogRecord("t", logging.INFO, __file__, 1, "sent to %s", ("a@example.com",), None)

    assert RedactionFilter().filter(record)
    assert record.getMessage() == "sent to [redacted_email]"


def _settings(**overrides) -> Settings:
    values = {
        "DATABASE_URL": "memory://",
        "GHL_API_KEY": "key",
        "GHL_LOCATION_ID": "loc",
    }
    values.update(overrides)
    return Settings(_env_file=None, **values)


def test_settings_normalise_urls():
    settings = _settings(SITE_URL="https://portal.example.test/", GHL_API_BASE="https://crm.test/")
    assert settings.site_url == "https://portal.example.test"
    assert settings.ghl_api_base == "https://crm.test"


@pytest.mark.parametrize(
    "overrides",
    [{"GHL_API_KEY": "  "}, {"GHL_LOCATION_ID": ""}, {"TOKEN_SWEEP_INTERVAL_SECONDS": 0}],
)
def test_settings_reject_bad_values(overrides):
    with pytest.raises(ValidationError):
        _settings(**overrides)
