"""
Exception types raised across collaborator boundaries.

Input problems (bad setup text, empty replies, oversize drafts) are NOT
exceptions - parsers return result objects. Only collaborator failures and
data-integrity violations raise.
"""
from typing import Optional


class CollaboratorError(Exception):
    """A transform, transport, or storage call failed."""

    operation = "collaborator"

    def __init__(self, message: str, *, operation: Optional[str] = None):
        super().__init__(message)
        if operation:
            self.operation = operation


class ContentTransformError(CollaboratorError):
    operation = "content_transform"


class TransportError(CollaboratorError):
    operation = "transport_send"

    def __init__(
        self,
        message: str,
        *,
        error_code: Optional[str] = None,
        operation: Optional[str] = None,
    ):
        super().__init__(message, operation=operation)
        self.error_code = error_code


class RecordStoreError(CollaboratorError):
    operation = "record_store"


class OptionsAlreadyResolvedError(Exception):
    """A reply option set was already resolved by an earlier reply."""

    def __init__(self, option_set_id):
        super().__init__(f"Reply option set {option_set_id} is already resolved")
        self.option_set_id = option_set_id


class PartyValidationError(ValueError):
    """Phone pair rejected before any party write."""
