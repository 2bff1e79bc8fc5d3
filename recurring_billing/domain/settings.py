"""
Ordered setting resolution: business profile -> account -> default.

Every fallback chain (time zone, invoice prefix, due-date duration,
starting number) goes through ``resolve_setting`` so the precedence rule
lives in one place.
"""

from __future__ import annotations

from typing import TypeVar

from billing_kernel.exceptions import ProfileNotFoundError

from recurring_billing.domain.types import Account, InvoiceSettings, Scope

T = TypeVar("T")


def resolve_setting(*candidates: T | None, default: T) -> T:
    """Return the first candidate that is set, else ``default``.

    ``None`` and blank strings count as unset.
    """
    for candidate in candidates:
        if candidate is None:
            continue
        if isinstance(candidate, str) and not candidate.strip():
            continue
        return candidate
    return default


def profile_settings(account: Account, scope: Scope) -> InvoiceSettings | None:
    """Settings of the scope's business profile; None for the personal scope.

    Raises:
        ProfileNotFoundError: If the business profile is not on the account.
    """
    if scope.is_personal:
        return None
    if not account.has_profile(scope.profile_id):
        raise ProfileNotFoundError(account.owner_id, scope.profile_id)
    return account.profiles[scope.profile_id]


def resolve_timezone(account: Account, scope: Scope, default: str) -> str:
    profile = profile_settings(account, scope)
    return resolve_setting(
        profile.timezone if profile else None,
        account.settings.timezone,
        default=default,
    )


def resolve_prefix(account: Account, scope: Scope, default: str) -> str:
    profile = profile_settings(account, scope)
    return resolve_setting(
        profile.prefix if profile else None,
        account.settings.prefix,
        default=default,
    )


def scope_next_number(account: Account, scope: Scope) -> int | None:
    """The scope's own counter: the profile's for business, else the account's."""
    profile = profile_settings(account, scope)
    return profile.next_number if profile else account.settings.next_number
