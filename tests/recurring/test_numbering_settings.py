"""
Tests for invoice number parsing and the profile -> account -> default
setting resolution.
"""

import pytest

from billing_kernel.exceptions import ProfileNotFoundError

from recurring_billing.domain.numbering import (
    format_invoice_number,
    next_number_after,
    parse_invoice_number,
)
from recurring_billing.domain.settings import (
    profile_settings,
    resolve_prefix,
    resolve_setting,
    resolve_timezone,
    scope_next_number,
)
from recurring_billing.domain.types import Account, InvoiceSettings, Scope


# =============================================================================
# Numbering
# =============================================================================


class TestInvoiceNumbers:
    @pytest.mark.parametrize(
        "value, expected",
        [
            (42, 42),
            ("42", 42),
            ("INV-00042", 42),
            ("  BIZ-2024-0007 ", 7),
            ("INV-", None),
            ("draft", None),
            ("", None),
            (None, None),
            (True, None),
        ],
    )
    def test_parse(self, value, expected):
        assert parse_invoice_number(value) == expected

    def test_next_number_after_legacy_string(self):
        assert next_number_after("INV-00042") == 43

    def test_next_number_after_unparseable(self):
        assert next_number_after("N/A") is None

    def test_format_pads(self):
        assert format_invoice_number("INV", 42) == "INV-00042"
        assert format_invoice_number("BIZ", 7, padding=3) == "BIZ-007"

    def test_format_never_truncates(self):
        assert format_invoice_number("INV", 1234567) == "INV-1234567"


# =============================================================================
# Setting resolution
# =============================================================================


@pytest.fixture
def account():
    return Account(
        owner_id="owner-1",
        settings=InvoiceSettings(prefix="ACC", next_number=10, timezone="America/Chicago"),
        profiles={
            "full": InvoiceSettings(prefix="FULL", next_number=500, timezone="Europe/London"),
            "bare": InvoiceSettings(),
        },
    )


class TestResolveSetting:
    def test_first_set_candidate_wins(self):
        assert resolve_setting(None, "", "  ", "x", "y", default="d") == "x"

    def test_default_when_nothing_set(self):
        assert resolve_setting(None, None, default=3) == 3

    def test_zero_counts_as_set(self):
        assert resolve_setting(0, 5, default=1) == 0


class TestScopeSettings:
    def test_personal_scope_has_no_profile(self, account):
        assert profile_settings(account, Scope.personal()) is None

    def test_missing_profile_raises(self, account):
        with pytest.raises(ProfileNotFoundError) as exc_info:
            profile_settings(account, Scope.business("ghost"))
        assert exc_info.value.code == "PROFILE_NOT_FOUND"
        assert exc_info.value.profile_id == "ghost"

    @pytest.mark.parametrize(
        "scope, expected",
        [
            (Scope.personal(), "America/Chicago"),
            (Scope.business("full"), "Europe/London"),
            (Scope.business("bare"), "America/Chicago"),
        ],
    )
    def test_timezone_chain(self, account, scope, expected):
        assert resolve_timezone(account, scope, "UTC") == expected

    def test_timezone_default(self):
        assert resolve_timezone(Account("o"), Scope.personal(), "UTC") == "UTC"

    @pytest.mark.parametrize(
        "scope, expected",
        [
            (Scope.personal(), "ACC"),
            (Scope.business("full"), "FULL"),
            (Scope.business("bare"), "ACC"),
        ],
    )
    def test_prefix_chain(self, account, scope, expected):
        assert resolve_prefix(account, scope, "INV") == expected

    def test_next_number_uses_own_scope_counter_only(self, account):
        assert scope_next_number(account, Scope.personal()) == 10
        assert scope_next_number(account, Scope.business("full")) == 500
        assert scope_next_number(account, Scope.business("bare")) is None
