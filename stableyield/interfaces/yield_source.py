"""Yield source protocol — third-party yield index abstraction."""
from typing import Any, Protocol


class YieldSource(Protocol):
    """Abstract interface for fetching raw pool records.

    Implementations raise ``DataSourceError`` when the index is unreachable
    or returns a malformed body.
    """

    async def fetch_pools(self) -> list[dict[str, Any]]: ...
