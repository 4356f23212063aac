"""
Cursor pagination over sr.ht GraphQL collections.

Every list field of the sr.ht APIs is a connection of the form
{results: [...], cursor: String}; a null cursor ends the collection.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Generator, List, Optional

from srht_client.context import OperationContext
from srht_client.graphql_client import SrhtClient
from srht_client.utils import lookup

from .types import PaginationError

logger = logging.getLogger(__name__)

Cursor = Optional[str]


@dataclass
class Page:
    """One page of a collection."""
    items: List[Any] = field(default_factory=list)
    cursor: Cursor = None


FetchPage = Callable[[Cursor], Page]


def paginate(
    fetch_page: FetchPage,
    max_pages: int | None = None,
) -> Generator[Any, None, None]:
    """
    Walk a collection page by page.

    Items are yielded in server order. Errors raised by `fetch_page`
    propagate immediately and end the walk.

    Args:
        fetch_page: Callable returning the page that starts at a cursor
        max_pages: Stop with PaginationError after this many pages

    Yields:
        Individual items across all pages
    """
    cursor: Cursor = None
    pages = 0

    while True:
        if max_pages is not None and pages >= max_pages:
            raise PaginationError(f"collection did not end after {max_pages} pages")

        page = fetch_page(cursor)
        pages += 1

        for item in page.items:
            yield item

        if page.cursor is None:
            logger.debug(f"Pagination finished after {pages} page(s)")
            return

        cursor = page.cursor


def connection_fetcher(
    client: SrhtClient,
    query: str,
    path: str,
    variables: dict[str, Any] | None = None,
    ctx: OperationContext | None = None,
) -> FetchPage:
    """
    Adapt a GraphQL list query to a FetchPage callable.

    The query must take a `$cursor: Cursor` variable; `path` is the dotted
    location of the connection in the response data ("me.repositories").
    """
    base_vars = dict(variables or {})

    def fetch(cursor: Cursor) -> Page:
        data = client.execute(query, {**base_vars, "cursor": cursor}, ctx=ctx)
        connection = lookup(data, path)
        if connection is None:
            return Page()
        return Page(
            items=list(connection.get("results") or []),
            cursor=connection.get("cursor"),
        )

    return fetch


def walk(
    client: SrhtClient,
    query: str,
    path: str,
    variables: dict[str, Any] | None = None,
    ctx: OperationContext | None = None,
) -> Generator[Any, None, None]:
    """Shorthand for paginate(connection_fetcher(...))."""
    return paginate(connection_fetcher(client, query, path, variables, ctx))
