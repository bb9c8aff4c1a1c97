from __future__ import annotations


class AppError(Exception):
    """Base error for domain/application exceptions."""


class NotFound(AppError):
    """Raised when entity is missing."""


class ValidationError(AppError):
    """Raised for domain-level validation beyond schema validation."""


class InvalidSignature(AppError):
    """Raised when a webhook body does not match its HMAC signature."""


class WebhookValidationError(AppError):
    """Raised when a webhook body is malformed or lacks required fields."""


class TransactionAlreadyClaimed(AppError):
    """Raised when a concurrent delivery resolved the same transaction first."""

    def __init__(self, transaction_code: str, status: str | None = None) -> None:
        super().__init__(f"Transaction {transaction_code} already processed")
        self.transaction_code = transaction_code
        self.status = status
