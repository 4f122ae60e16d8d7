import pytest
from pydantic import ValidationError

from offerwheel_api.core.settings import Settings
from offerwheel_api.observability.tracing import parse_otlp_headers


def test_country_code_is_normalised_to_digits() -> None:
    assert Settings(whatsapp_default_country_code="+91").whatsapp_default_country_code == "91"


def test_attempt_counts_must_be_positive() -> None:
    with pytest.raises(ValidationError):
        Settings(notification_max_attempts=0)
    with pytest.raises(ValidationError):
        Settings(voucher_code_max_attempts=0)


def test_defaults_match_retry_schedule() -> None:
    defaults = Settings()
    assert defaults.notification_max_attempts == 3
    assert defaults.notification_backoff_seconds == 2.0
    assert defaults.prize_day_timezone == "UTC"


def test_otlp_header_parsing_skips_malformed_pairs() -> None:
    assert parse_otlp_headers("api-key=abc, tenant = demo,broken,=x") == {"api-key": "abc", "tenant": "demo"}
    assert parse_otlp_headers("") is None
    assert parse_otlp_headers("novalue") is None
