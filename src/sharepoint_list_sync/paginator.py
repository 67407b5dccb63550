# -*- coding: utf-8 -*-
"""
Cursor pagination over SharePoint list items.

Pages are requested strictly one after another, following the
@odata.nextLink cursor until a page carries none. A failure on any page
aborts the whole walk: a partial snapshot of existing items is never handed
back, because upsert decisions built on it would turn existing rows into
duplicates.

Note:
    fetch_all() holds every item in memory. Very large lists are bounded by
    available memory, not by the paginator.
"""

from .errors import GraphApiError, PaginationError
from .utils import is_debug_enabled

DEFAULT_PAGE_SIZE = 999


class CursorPaginator:
    """
    Lazy, finite, single-use walk over the items of one list.

    Example:
        paginator = CursorPaginator(client, list_ref, token)
        for page in paginator.pages():
            ...
    """

    def __init__(self, client, list_ref, token, page_size=DEFAULT_PAGE_SIZE, cancel_event=None, on_log=None):
        """
        Args:
            client (GraphListClient): Transport for page requests
            list_ref (ListRef): List to walk
            token (str): Bearer token
            page_size (int): Items requested per page ($top)
            cancel_event (threading.Event): Checked between pages
            on_log (callable): Progress sink
        """
        self.client = client
        self.list_ref = list_ref
        self.token = token
        self.page_size = page_size
        self.cancel_event = cancel_event
        self.on_log = on_log or client.on_log
        self.requests_made = 0
        self._started = False

    def pages(self):
        """
        Yield one list of raw Graph items per page.

        Raises:
            RuntimeError: If the paginator has already been iterated
            PaginationError: If any page fails or the walk is cancelled
        """
        if self._started:
            raise RuntimeError("CursorPaginator can only be iterated once")
        self._started = True

        url = self.client.items_url(self.list_ref.list_id)
        params = {'expand': 'fields', '$top': self.page_size}

        while url:
            if self.cancel_event is not None and self.cancel_event.is_set():
                raise PaginationError(f"Listing '{self.list_ref.display_name}' cancelled after {self.requests_made} pages")

            self.requests_made += 1
            try:
                data = self.client.get_page(url, self.token, params=params)
            except GraphApiError as e:
                raise PaginationError(
                    f"Listing '{self.list_ref.display_name}' failed on page {self.requests_made}: {e}"
                ) from e

            items = data.get('value', [])
            if is_debug_enabled():
                self.on_log(f"[DEBUG] Page {self.requests_made}: {len(items)} items")
            yield items

            # The cursor already encodes the query; later pages take no extra params
            url = data.get('@odata.nextLink')
            params = None

    def fetch_all(self):
        """
        Walk every page and return all items at once.

        Returns:
            list: Raw Graph items from every page, in page order

        Raises:
            PaginationError: If any page fails; nothing partial is returned
        """
        items = []
        for page in self.pages():
            items.extend(page)
        return items
