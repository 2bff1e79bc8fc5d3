"""
External collaborator contracts.

Contract:
    The engine never owns customers, invoices or account settings.  It
    talks to them through these protocols; the surrounding application
    supplies implementations (HTTP clients, other services, or the
    in-memory fakes used by the test suite).

Architecture: recurring_billing/services.  Depends on domain types only.

Non-goals:
    - No timeout or retry policy -- implementations own that.  The
      generator only isolates and reports their failures.
"""

from __future__ import annotations

from typing import Protocol, runtime_checkable

from recurring_billing.domain.types import (
    Account,
    Customer,
    Invoice,
    InvoicePayload,
    Scope,
)


@runtime_checkable
class CustomerDirectory(Protocol):
    """Customer lookup by (customer, owner, scope)."""

    def get_customer(
        self,
        customer_id: str,
        owner_id: str,
        scope: Scope,
    ) -> Customer | None:
        """Return the customer, or None when it does not exist.

        Implementations may raise ``CustomerNotFoundError`` instead of
        returning None.
        """
        ...


@runtime_checkable
class InvoiceGateway(Protocol):
    """Invoice creation and lookup."""

    def create_invoice(
        self,
        payload: InvoicePayload,
        owner_id: str,
        account: Account,
        customer: Customer,
        scope: Scope,
    ) -> Invoice:
        """Persist a new invoice and return it.

        May raise on invalid account settings (e.g. missing numbering
        prefix).  ``payload.idempotency_key`` is stable across retries of
        the same record/number pair so implementations can deduplicate.
        """
        ...

    def get_invoice(
        self,
        invoice_id: str,
        owner_id: str,
        scope: Scope,
    ) -> Invoice | None:
        ...


@runtime_checkable
class AccountDirectory(Protocol):
    """Owning account settings and its manual invoice-numbering counter."""

    def get_account(self, owner_id: str) -> Account | None:
        ...

    def increment_counter(self, owner_id: str, scope: Scope) -> None:
        """Advance the scope's own invoice-numbering counter by one."""
        ...
