"""Object storage listing operations."""

from .paginator import ListingPage, ListingPaginator

__all__ = ["ListingPage", "ListingPaginator"]
