# Overview: Typed error hierarchy raised by the ledger core and mapped to HTTP responses.

"""
StockLedger error taxonomy (authoritative)

Every error carries:
- code: machine-readable identifier, stable across message wording changes
- status_code: the HTTP status the API layer answers with
- details: small structured context (ids, quantities) for callers and logs

Services raise these; routes roll back the session and answer with
ledger_error_response(). Anything that is not a LedgerError is an
unexpected failure and surfaces as a generic 500.
"""

from __future__ import annotations

from typing import Any

from flask import jsonify


class LedgerError(Exception):
    """Base class for all ledger-core errors."""

    code = "LEDGER_ERROR"
    status_code = 500

    def __init__(self, message: str, **details: Any):
        super().__init__(message)
        self.message = message
        self.details = details

    def to_dict(self) -> dict:
        payload = {"error": self.message, "code": self.code}
        if self.details:
            payload["details"] = self.details
        return payload


class ValidationError(LedgerError):
    """Malformed or missing input. Nothing was written."""

    code = "VALIDATION_ERROR"
    status_code = 400


class NotFoundError(LedgerError):
    """Referenced document, invoice, payment, product, location or vendor does not exist."""

    code = "NOT_FOUND"
    status_code = 404


class AlreadyAppliedError(LedgerError):
    """Document is already APPLIED; re-applying or deleting it is refused."""

    code = "ALREADY_APPLIED"
    status_code = 409


class InsufficientStockError(LedgerError):
    """Mutation would drive a stock level below zero."""

    code = "INSUFFICIENT_STOCK"
    status_code = 409


class PaymentExceedsBalanceError(ValidationError):
    """Payment amount is greater than the invoice's current balance."""

    code = "PAYMENT_EXCEEDS_BALANCE"
    status_code = 400


class ConcurrencyConflictError(LedgerError):
    """A concurrent transaction changed the same rows. Safe to retry."""

    code = "CONCURRENCY_CONFLICT"
    status_code = 409


def ledger_error_response(exc: LedgerError):
    return jsonify(exc.to_dict()), exc.status_code
