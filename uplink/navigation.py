"""
Navigation Controller

Keeps the current page and the URL fragment in step.

ALIASES:
========
- PROTOKOLL is addressed externally as "#episoden"
- "#archiv" opens PROTOKOLL grouped by story phase
- "?ep=<n>" deep-links to episode n on PROTOKOLL
Unknown or empty fragments resolve to the start page.
"""

from __future__ import annotations
from typing import Any, Dict, Optional, Union
import logging
import re

from .contracts import Location, PageId, SortOrder
from .events import EventBus

logger = logging.getLogger(__name__)

PAGE_TO_FRAGMENT: Dict[PageId, str] = {PageId.PROTOKOLL: 'episoden'}
FRAGMENT_TO_PAGE: Dict[str, PageId] = {v: k for k, v in PAGE_TO_FRAGMENT.items()}
PHASE_VIEW_FRAGMENT = 'archiv'
DEEP_LINK_PARAM = 'ep'

_DIGITS = re.compile(r'^\d+$')


def page_to_fragment(page: PageId) -> str:
    return PAGE_TO_FRAGMENT.get(page, page.value)


def fragment_to_page(fragment: str) -> PageId:
    """Page for a fragment (leading '#' allowed); unknown -> start page."""
    fragment = fragment.lstrip('#')
    if fragment in FRAGMENT_TO_PAGE:
        return FRAGMENT_TO_PAGE[fragment]
    return PageId.parse(fragment) or PageId.default()


class NavigationController:
    """
    Owns PageState.

    GUARANTEES:
    ===========
    1. Exactly one page is visible once routing has run
    2. The fragment is written only when a caller asks for it
    3. Re-routing to the current page is a no-op unless a deep link
       requires scrolling again
    """

    def __init__(self, bus: EventBus, location: Optional[Location] = None):
        self._bus = bus
        self._location = location or Location()
        self._current: Optional[PageId] = None
        self._visible: Dict[PageId, bool] = {page: False for page in PageId}
        self._order = SortOrder.NEWEST
        self._pending_scroll: Optional[int] = None
        self._fragment_writes = 0
        self._bus.subscribe('page:rendered', self._on_page_rendered)

    # -------------------------------------------------------------------------
    # State
    # -------------------------------------------------------------------------

    @property
    def current_page(self) -> Optional[PageId]:
        return self._current

    @property
    def location(self) -> Location:
        return self._location

    @property
    def order(self) -> SortOrder:
        return self._order

    @property
    def fragment_writes(self) -> int:
        """How many times navigation rewrote the fragment."""
        return self._fragment_writes

    @property
    def pending_scroll(self) -> Optional[int]:
        return self._pending_scroll

    def page_visibility(self) -> Dict[PageId, bool]:
        return dict(self._visible)

    def deep_link_target(self) -> Optional[int]:
        """Episode number named by the `ep` query parameter, if valid."""
        raw = self._location.query_param(DEEP_LINK_PARAM)
        if not raw or not _DIGITS.match(raw):
            return None
        value = int(raw)
        return value if value >= 1 else None

    def deep_link(self, sequence_number: int) -> str:
        """Shareable URL (path, query, fragment) for an episode."""
        target = Location(path=self._location.path).with_query(**{DEEP_LINK_PARAM: str(sequence_number)})
        return target.with_fragment(page_to_fragment(PageId.PROTOKOLL)).to_url()

    # -------------------------------------------------------------------------
    # Operations
    # -------------------------------------------------------------------------

    def navigate(
        self,
        page: Union[PageId, str, None],
        scroll_to_top: bool = True,
        update_hash: bool = True
    ) -> PageId:
        """Show `page` (start page if unrecognized) and announce it."""
        target = PageId.parse(page) or PageId.default()

        for candidate in self._visible:
            self._visible[candidate] = candidate is target

        if update_hash:
            self._location = self._location.with_fragment(page_to_fragment(target))
            self._fragment_writes += 1

        self._current = target
        logger.debug("Navigated to %s", target.value)
        self._bus.publish('navigate', {'page': target.value, 'scroll_to_top': scroll_to_top})
        return target

    def handle_route(self) -> PageId:
        """Resolve the current location; run at startup and on every change."""
        fragment = self._location.fragment.lstrip('#')

        if fragment == PHASE_VIEW_FRAGMENT:
            page = self.navigate(PageId.PROTOKOLL, update_hash=True)
            self.set_order(SortOrder.PHASE)
            return page

        target = fragment_to_page(fragment)
        deep_link = self.deep_link_target() if target is PageId.PROTOKOLL else None

        if self._current is target and deep_link is None:
            return target

        self.navigate(target, update_hash=False)
        if deep_link is not None:
            self.set_order(SortOrder.CHRONO)
            self._pending_scroll = deep_link
        return target

    def set_location(self, location: Union[Location, str]) -> None:
        """Replace the location without routing (before startup routing runs)."""
        self._location = Location.parse(location) if isinstance(location, str) else location

    def on_location_change(self, location: Union[Location, str]) -> PageId:
        """External URL change (history navigation, pasted link)."""
        self._location = Location.parse(location) if isinstance(location, str) else location
        return self.handle_route()

    def set_order(self, order: Union[SortOrder, str]) -> SortOrder:
        self._order = SortOrder(order)
        self._bus.publish('order:changed', {'order': self._order.value})
        return self._order

    def _on_page_rendered(self, payload: Any) -> None:
        if self._pending_scroll is None:
            return
        page = payload.get('page') if isinstance(payload, dict) else payload
        if PageId.parse(page) is not PageId.PROTOKOLL:
            return
        target, self._pending_scroll = self._pending_scroll, None
        self._bus.publish('navigation:scroll', {'sequence_number': target, 'anchor': f"ep-{target}"})
