"""
Catalog error taxonomy.

Validation and not-found errors are raised at the catalog boundary.
Provider errors are defined next to the provider base class; storage
errors are SQLAlchemy's own and are never wrapped.
"""


class CatalogError(Exception):
    """Base exception for catalog errors."""


class ValidationError(CatalogError):
    """Raised when caller input is rejected before reaching the catalog."""

    def __init__(self, message: str, *, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or [message]


class NotFoundError(CatalogError):
    """Raised when a referenced resource does not exist."""

    def __init__(self, resource: str, identifier: str) -> None:
        super().__init__(f"{resource} not found: {identifier}")
        self.resource = resource
        self.identifier = identifier
