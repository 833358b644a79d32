"""
Shared fixtures: a scripted renderer and results page builders.
"""
from typing import Dict, Iterable, List, Optional, Tuple

import pytest

from rentscraper.config import ScraperSettings, Timings
from rentscraper.errors import RenderError
from rentscraper.models import RenderedPage


def build_card(item: Dict) -> str:
    link = ""
    if item.get("id"):
        link = (
            f'<a href="/realestate/item/{item["id"]}?opened-from=feed">'
            f'<figure><img src="https://img.yad2.co.il/Pic/{item["id"]}.jpg"></figure></a>'
        )
    price = ""
    if item.get("price"):
        price = f'<span class="feed-item-price_price__ygoeF">{item["price"]}</span>'
    return (
        '<div class="feed-item-base_feedItem__1">'
        f"{link}{price}"
        f'<h2 class="item-data-content_heading__tphH4">{item.get("location", "הרצל 10, תל אביב")}</h2>'
        '<span class="item-data-content_itemInfoLine__AeoPP">דירה, מרכז העיר</span>'
        f'<span class="item-data-content_itemInfoLine__AeoPP">{item.get("rooms", 3)} חדרים • '
        f'קומה {item.get("floor", 2)} • 80 מ"ר</span>'
        "</div>"
    )


def build_feed_html(items: Iterable[Dict], title: str = "נדל\"ן להשכרה | יד2", footer: str = "") -> str:
    cards = "".join(build_card(it) for it in items)
    return (
        f"<html><head><title>{title}</title></head><body>"
        f'<div data-testid="feed-list">{cards}</div>{footer}</body></html>'
    )


def items_for_page(page_index: int, count: int) -> List[Dict]:
    return [{"id": f"p{page_index}x{i}", "price": f"{5000 + i},000 ₪"} for i in range(count)]


class FakeRenderer:
    """Scripted stand-in for BrowserSession; records every call."""

    def __init__(
        self,
        pages: Optional[Dict[int, Tuple[str, str]]] = None,
        probes: Optional[Dict[int, object]] = None,
        evasions: Optional[Dict[int, str]] = None,
        failures: Iterable[int] = (),
    ):
        self.pages = pages or {}
        self.probes = probes or {}
        self.evasions = evasions or {}
        self.failures = set(failures)
        self.calls: List[Tuple[str, int]] = []
        self.closed = False
        self._current: Optional[RenderedPage] = None

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        self.closed = True

    async def render(self, url: str, page_index: int) -> RenderedPage:
        self.calls.append(("render", page_index))
        if page_index in self.failures:
            raise RenderError(url, "Timeout 45000ms exceeded")
        title, html = self.pages.get(page_index, ("Empty", "<html><body></body></html>"))
        self._current = RenderedPage(url=url, page_index=page_index, title=title, html=html)
        return self._current

    async def settle(self) -> RenderedPage:
        self.calls.append(("settle", self._current.page_index))
        return self._current

    async def evade(self) -> RenderedPage:
        current = self._current
        self.calls.append(("evade", current.page_index))
        title = self.evasions.get(current.page_index, current.title)
        self._current = RenderedPage(current.url, current.page_index, title, current.html)
        return self._current

    async def probe(self, url: str, page_index: int) -> RenderedPage:
        self.calls.append(("probe", page_index))
        scripted = self.probes.get(page_index)
        if isinstance(scripted, Exception):
            raise scripted
        if scripted is None:
            scripted = self.pages.get(page_index, ("", ""))[1]
        return RenderedPage(url=url, page_index=page_index, title="", html=scripted)

    def count(self, kind: str) -> int:
        return sum(1 for k, _ in self.calls if k == kind)


@pytest.fixture
def settings():
    return ScraperSettings(timings=Timings.instant(), max_pages=5)


@pytest.fixture
def feed_html():
    return build_feed_html


@pytest.fixture
def page_items():
    return items_for_page


@pytest.fixture
def fake_renderer():
    return FakeRenderer
