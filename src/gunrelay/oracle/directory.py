"""Relay directory — the enumerable set of staked relays and their URLs.

The directory is read through three calls (count, address at index, URL
of address), the same surface the membership contract exposes. Reads are
paginated and lazy so the oracle never assumes the full set fits in one
call.
"""

from __future__ import annotations

from typing import Iterator, Protocol, runtime_checkable

from gunrelay.models.relay import RelayEndpoint

DEFAULT_PAGE_SIZE = 100


@runtime_checkable
class RelayDirectory(Protocol):

    def get_relay_count(self) -> int:
        ...

    def get_relay_at(self, i: int) -> str:
        ...

    def relay_url(self, address: str) -> str:
        ...


def iter_pages(
    directory: RelayDirectory, page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[list[RelayEndpoint]]:
    """Yield the directory in pages of at most ``page_size`` endpoints.

    The count is read once up front. Entries removed while paging
    (swap-and-pop can shrink the index) end the iteration early.
    """
    if page_size <= 0:
        raise ValueError(f"Page size must be positive, got {page_size}")
    count = directory.get_relay_count()
    for start in range(0, count, page_size):
        page: list[RelayEndpoint] = []
        for i in range(start, min(start + page_size, count)):
            try:
                address = directory.get_relay_at(i)
            except IndexError:
                if page:
                    yield page
                return
            page.append(RelayEndpoint(address=address, url=directory.relay_url(address)))
        yield page


def iter_directory(
    directory: RelayDirectory, page_size: int = DEFAULT_PAGE_SIZE,
) -> Iterator[RelayEndpoint]:
    """Lazily yield every relay endpoint, deduplicated by address."""
    seen: set[str] = set()
    for page in iter_pages(directory, page_size):
        for endpoint in page:
            if endpoint.address in seen:
                continue
            seen.add(endpoint.address)
            yield endpoint
