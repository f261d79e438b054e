"""Exception hierarchy shared by the core modules."""

from __future__ import annotations


class LedgerCheckError(Exception):
    """Base class for all LedgerCheck failures."""


class ValidationError(LedgerCheckError):
    """An action or record failed a business rule."""


class Unauthorized(ValidationError):
    """The actor is not allowed to act on the account at its current stage."""


class AlreadyFinalized(ValidationError):
    """The account has left the workflow and accepts no further transitions."""


class MissingReason(ValidationError):
    """A rejection or correction was submitted without a reason."""


class DuplicateAccountError(ValidationError):
    """A batch would introduce an account number or id already in the store."""


class ParseError(LedgerCheckError):
    """Uploaded content could not be interpreted."""


class SheetReadError(ParseError):
    """The upload is not a readable CSV or workbook."""


class HeaderDetectionError(ParseError):
    """No sheet carries enough recognised headers to import.

    ``layout`` is the best candidate sheet layout found, if any, so callers
    can report which sheet and header row were inspected.
    """

    def __init__(self, message: str, layout: object = None) -> None:
        super().__init__(message)
        self.layout = layout


class AccountNotFound(LedgerCheckError, KeyError):
    """No account with the requested id exists in the store."""

    def __init__(self, account_id: int) -> None:
        super().__init__(f"Account {account_id} not found in review store")
        self.account_id = account_id

    def __str__(self) -> str:
        return str(self.args[0])


__all__ = [
    "AccountNotFound",
    "AlreadyFinalized",
    "DuplicateAccountError",
    "HeaderDetectionError",
    "LedgerCheckError",
    "MissingReason",
    "ParseError",
    "SheetReadError",
    "Unauthorized",
    "ValidationError",
]
