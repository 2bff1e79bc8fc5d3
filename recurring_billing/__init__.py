"""
recurring_billing -- Recurring invoice templates and scheduled generation.

Stores recurring invoice templates (recurrence records), advances each one
along its cadence, and produces concrete invoices through injected
collaborators.  A scheduled job runs one generation pass over every due
record; lifecycle operations create, edit, pause, resume and stop records.

Architecture:
    recurring_billing/ sits on top of billing_kernel/ (db, logging,
    exceptions, clock).  Nothing in billing_kernel/ imports from here,
    except create_tables() which registers the ORM models.

Guarantees:
    - One record's failure never aborts the rest of a run (SAVEPOINT per
      record).
    - Invoice numbers never decrease within a scope.
    - Every instant comes from an injected Clock; no datetime.now() calls.
    - Cadence and eligibility evaluation is pure.
    - The cursor advance and counter increment of one invoice succeed or
      roll back together.
"""
