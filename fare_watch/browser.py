"""Playwright page driving for fare result pages."""

import logging
import os
from collections.abc import Iterator
from contextlib import contextmanager

from playwright.sync_api import Error as PlaywrightError
from playwright.sync_api import Page
from playwright.sync_api import TimeoutError as PlaywrightTimeoutError
from playwright.sync_api import sync_playwright

from fare_watch.normalizer import STOPOVER_TAG, CardSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CDP_URL = "http://127.0.0.1:9222"

CARD_SELECTOR = ".flight-item"
ACTION_SELECTOR = ".buy-btn,.btn-select,.flight-btn"
CLICK_SELECTOR = ".flight-btn,.buy-btn,.btn-select,.tripui-online-btn"
PRICE_SELECTORS = [".price-info", ".head-prices", ".flight-price", ".lowestPrice"]
TRANSFER_SELECTOR = ".arrow-item"
TOOLTIP_SELECTOR = ".tooltip.popover.vue-popover-theme.open, .tooltip-inner.popover-inner"
RETURN_STAGE_MARKERS = ["去程已选", "选择返程", "返回日期"]

HOVER_WAIT_MS = 220

# Serializes every visible card; mirrors CardSnapshot.
_READ_CARDS_JS = """
({cardSel, actionSel, priceSels, transferSel, stopTag}) => {
  const visible = el => !!el && el.offsetParent !== null;
  const textOf = el => ((el && el.innerText) || '').replace(/\\s+/g, ' ').trim();
  const cards = Array.from(document.querySelectorAll(cardSel)).filter(visible);
  return cards.map((card, index) => {
    const priceNode = priceSels.map(s => card.querySelector(s)).find(Boolean);
    const stopNode = Array.from(card.querySelectorAll('*'))
      .find(el => visible(el) && textOf(el) === stopTag);
    return {
      index,
      text: textOf(card),
      hasAction: !!card.querySelector(actionSel),
      priceText: textOf(priceNode),
      transferText: textOf(card.querySelector(transferSel)),
      hasStopTag: !!stopNode,
    };
  });
}
"""

_HOVER_STOP_TAG_JS = """
({cardSel, index, stopTag, events}) => {
  const visible = el => !!el && el.offsetParent !== null;
  const textOf = el => ((el && el.innerText) || '').replace(/\\s+/g, ' ').trim();
  const cards = Array.from(document.querySelectorAll(cardSel)).filter(visible);
  const card = cards[index];
  if (!card) return false;
  const tag = Array.from(card.querySelectorAll('*'))
    .find(el => visible(el) && textOf(el) === stopTag);
  if (!tag) return false;
  for (const name of events) tag.dispatchEvent(new MouseEvent(name, { bubbles: true }));
  return true;
}
"""

_READ_TOOLTIP_JS = """
({tooltipSel, stopTag}) => {
  const visible = el => !!el && el.offsetParent !== null;
  const textOf = el => ((el && el.innerText) || '').replace(/\\s+/g, ' ').trim();
  const tips = Array.from(document.querySelectorAll(tooltipSel))
    .filter(visible).map(textOf).filter(t => t && t.includes(stopTag));
  return tips[0] || '';
}
"""

_AT_BOTTOM_JS = "() => window.innerHeight + window.scrollY >= document.body.scrollHeight - 8"
_SCROLL_JS = "f => window.scrollBy(0, Math.max(window.innerHeight * f, 700))"

_CLICK_OUTBOUND_JS = """
({cardSel, clickSel, full, primary}) => {
  const visible = el => !!el && el.offsetParent !== null;
  const textOf = el => (el.innerText || '').replace(/\\s+/g, ' ').trim();
  const clickCard = card => {
    if (!card) return false;
    const btn = Array.from(card.querySelectorAll(clickSel)).find(visible);
    if (!btn) return false;
    btn.click();
    return true;
  };
  const cards = Array.from(document.querySelectorAll(cardSel)).filter(visible);
  if (clickCard(cards.find(card => textOf(card).includes(full)))) return true;
  return clickCard(cards.find(card => textOf(card).includes(primary)));
}
"""

_RETURN_STAGE_JS = """
markers => {
  const txt = (document.body && document.body.innerText) || '';
  return markers.some(m => txt.includes(m));
}
"""


def _headless() -> bool:
    """Check BROWSER_HEADLESS (default true) for the launch fallback."""
    val = os.environ.get("BROWSER_HEADLESS", "true").lower()
    return val in ("true", "1", "yes")


@contextmanager
def open_page(cdp_url: str | None = None) -> Iterator[Page]:
    """
    Yield a page from a running Chromium (CDP) or a freshly launched one.

    A browser reachable at CDP_URL is reused with its first context and page;
    otherwise Chromium is launched locally.
    """
    cdp_url = cdp_url or os.environ.get("CDP_URL", DEFAULT_CDP_URL)
    with sync_playwright() as p:
        try:
            browser = p.chromium.connect_over_cdp(cdp_url, timeout=7000)
            logger.debug("Connected to browser at %s", cdp_url)
        except PlaywrightError as e:
            logger.info("No browser at %s (%s); launching Chromium", cdp_url, e)
            browser = p.chromium.launch(headless=_headless())
        try:
            context = browser.contexts[0] if browser.contexts else browser.new_context()
            page = context.pages[0] if context.pages else context.new_page()
            yield page
        finally:
            try:
                browser.close()
            except PlaywrightError as e:
                logger.debug("Browser close failed: %s", e)


def prepare_page(page: Page, url: str) -> None:
    """Navigate and give lazily rendered results time to appear."""
    page.goto(url, wait_until="domcontentloaded", timeout=45000)
    try:
        page.wait_for_load_state("networkidle", timeout=15000)
    except PlaywrightTimeoutError:
        logger.debug("Network did not go idle for %s", url)
    page.wait_for_timeout(2500)


class PlaywrightCardPage:
    """CollectorPage backed by a live Playwright page."""

    def __init__(self, page: Page) -> None:
        self.page = page

    def read_cards(self) -> list[CardSnapshot]:
        rows = self.page.evaluate(
            _READ_CARDS_JS,
            {
                "cardSel": CARD_SELECTOR,
                "actionSel": ACTION_SELECTOR,
                "priceSels": PRICE_SELECTORS,
                "transferSel": TRANSFER_SELECTOR,
                "stopTag": STOPOVER_TAG,
            },
        )
        return [
            CardSnapshot(
                index=row["index"],
                text=row.get("text") or "",
                has_action=bool(row.get("hasAction")),
                price_text=row.get("priceText") or "",
                transfer_text=row.get("transferText") or "",
                has_stop_tag=bool(row.get("hasStopTag")),
            )
            for row in rows
        ]

    def _dispatch(self, index: int, events: list[str]) -> bool:
        return bool(
            self.page.evaluate(
                _HOVER_STOP_TAG_JS,
                {"cardSel": CARD_SELECTOR, "index": index, "stopTag": STOPOVER_TAG, "events": events},
            )
        )

    def reveal_stopover(self, index: int) -> str | None:
        """Hover the card's stop tag and read the tooltip it opens."""
        if not self._dispatch(index, ["mouseenter", "mouseover"]):
            return None
        try:
            self.page.wait_for_timeout(HOVER_WAIT_MS)
            return self.page.evaluate(
                _READ_TOOLTIP_JS, {"tooltipSel": TOOLTIP_SELECTOR, "stopTag": STOPOVER_TAG}
            )
        finally:
            self._dispatch(index, ["mouseout", "mouseleave"])

    def at_bottom(self) -> bool:
        return bool(self.page.evaluate(_AT_BOTTOM_JS))

    def scroll_forward(self, fraction: float) -> None:
        self.page.evaluate(_SCROLL_JS, fraction)

    def settle(self, ms: int) -> None:
        self.page.wait_for_timeout(ms)


def click_outbound(page: Page, flight: str) -> bool:
    """
    Select the outbound fare so the page switches to return options.

    Tries the full designator chain first, then the primary designator.
    Returns False when no card matched.
    """
    if not flight:
        return False
    primary = flight.split("+")[0]
    clicked = page.evaluate(
        _CLICK_OUTBOUND_JS,
        {"cardSel": CARD_SELECTOR, "clickSel": CLICK_SELECTOR, "full": flight, "primary": primary},
    )
    if not clicked:
        return False

    page.wait_for_timeout(1200)
    try:
        page.wait_for_function(_RETURN_STAGE_JS, arg=RETURN_STAGE_MARKERS, timeout=20000)
    except PlaywrightTimeoutError:
        logger.debug("Return stage markers did not appear after selecting %s", flight)
    try:
        page.wait_for_load_state("networkidle", timeout=10000)
    except PlaywrightTimeoutError:
        logger.debug("Network did not go idle after selecting %s", flight)
    page.wait_for_timeout(1800)
    return True
