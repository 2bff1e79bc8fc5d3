"""
Typed Exception Hierarchy for the Billing Kernel.

Every error has a typed exception class, a ``code`` class attribute
(machine-readable, API-safe) and structured attributes instead of data
buried in the message string.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingError (base)
    |
    +-- ValidationError
    |   +-- InvalidFrequencyError
    |   +-- EmptyLineItemsError
    |   +-- ProtectedFieldError
    |   +-- InvalidScopeError
    |   +-- MissingFieldError
    |
    +-- NotFoundError
    |   +-- RecurrenceNotFoundError
    |   +-- OwnerNotFoundError
    |   +-- ProfileNotFoundError
    |   +-- CustomerNotFoundError
    |   +-- InvoiceNotFoundError
    |
    +-- GenerationError
        +-- GenerationRunAbortedError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category    | Code                      | When Raised
------------|---------------------------|------------------------------------------
Validation  | INVALID_FREQUENCY         | Cadence name is not a known frequency
            | EMPTY_LINE_ITEMS          | Nothing to bill after template expansion
            | PROTECTED_FIELD           | Update patch touches identity/cursor field
            | INVALID_SCOPE             | Business scope without a profile id
            | MISSING_FIELD             | Required template field not supplied
------------|---------------------------|------------------------------------------
Not found   | RECURRENCE_NOT_FOUND      | No record for id within caller's scope
            | OWNER_NOT_FOUND           | Owning account missing
            | PROFILE_NOT_FOUND         | Business profile missing on the account
            | CUSTOMER_NOT_FOUND        | Customer missing or in another scope
            | INVOICE_NOT_FOUND         | Source invoice missing (copy-from-invoice)
------------|---------------------------|------------------------------------------
Generation  | GENERATION_RUN_ABORTED    | Due-record query failed; run aborted

===============================================================================
HANDLING PATTERNS
===============================================================================

Batch generation never lets these escape per record; it records
``exc.code`` and ``str(exc)`` on a ``GenerationFailed`` outcome.  Manual
generation lets them propagate so the HTTP layer can map categories:

    NotFoundError   -> 404
    ValidationError -> 400
"""


class BillingError(Exception):
    """
    Base exception for all billing errors.

    All subclasses must have a ``code`` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_ERROR"


# Validation exceptions


class ValidationError(BillingError):
    """Input rejected before any write."""

    code: str = "VALIDATION_ERROR"


class InvalidFrequencyError(ValidationError):
    """Frequency is not one of the supported cadences."""

    code: str = "INVALID_FREQUENCY"

    def __init__(self, frequency: object):
        self.frequency = str(frequency)
        super().__init__(
            f"Invalid frequency: {frequency!r}. Must be one of: "
            "weekly, biweekly, monthly, quarterly, yearly"
        )


class EmptyLineItemsError(ValidationError):
    """Generation would produce an invoice without line items."""

    code: str = "EMPTY_LINE_ITEMS"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Recurring invoice {record_id} has no line items")


class ProtectedFieldError(ValidationError):
    """An update tried to change identity or generation cursor fields."""

    code: str = "PROTECTED_FIELD"

    def __init__(self, fields: list[str]):
        self.fields = sorted(fields)
        super().__init__(f"Fields cannot be updated: {', '.join(self.fields)}")


class InvalidScopeError(ValidationError):
    """A business scope was requested without a profile id."""

    code: str = "INVALID_SCOPE"

    def __init__(self, profile_id: object):
        self.profile_id = profile_id
        super().__init__(f"Business scope requires a profile id, got {profile_id!r}")


class MissingFieldError(ValidationError):
    """A required field was not supplied."""

    code: str = "MISSING_FIELD"

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Missing required field: {field}")


# Not-found exceptions


class NotFoundError(BillingError):
    """A referenced entity does not exist in the caller's scope."""

    code: str = "NOT_FOUND"


class RecurrenceNotFoundError(NotFoundError):
    """Recurrence record missing, or owned by another owner/scope."""

    code: str = "RECURRENCE_NOT_FOUND"

    def __init__(self, record_id: str):
        self.record_id = record_id
        super().__init__(f"Recurring invoice not found: {record_id}")


class OwnerNotFoundError(NotFoundError):
    """The owning account could not be resolved."""

    code: str = "OWNER_NOT_FOUND"

    def __init__(self, owner_id: str):
        self.owner_id = owner_id
        super().__init__(f"User account not found: {owner_id}")


class ProfileNotFoundError(NotFoundError):
    """The business profile does not exist on the owning account."""

    code: str = "PROFILE_NOT_FOUND"

    def __init__(self, owner_id: str, profile_id: str):
        self.owner_id = owner_id
        self.profile_id = profile_id
        super().__init__(f"Profile {profile_id} not found for account {owner_id}")


class CustomerNotFoundError(NotFoundError):
    """Customer missing, or belonging to a different scope."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice missing in the caller's scope."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


# Generation exceptions


class GenerationError(BillingError):
    """Base exception for generation run errors."""

    code: str = "GENERATION_ERROR"


class GenerationRunAbortedError(GenerationError):
    """The run failed before any record was processed."""

    code: str = "GENERATION_RUN_ABORTED"

    def __init__(self, run_id: str, cause: str):
        self.run_id = run_id
        self.cause = cause
        super().__init__(f"Scheduled generation failed: {cause}")
