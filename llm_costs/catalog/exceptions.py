from __future__ import annotations


class CatalogError(ValueError):
    """Raised when bundled catalog data is malformed.

    This is a configuration defect detected while loading, never a
    per-request outcome.
    """

    def __init__(self, message: str, *, source: str | None = None) -> None:
        super().__init__(f"{source}: {message}" if source else message)
        self.source = source
