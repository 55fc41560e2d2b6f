"""Turn raw result-card text into structured fare records."""

import logging
import re
from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace

from fare_watch.models import FareRecord, Price

logger = logging.getLogger(__name__)

FLIGHT_RE = re.compile(r"[A-Z][A-Z0-9]\d{3,4}")
CLOCK_RE = re.compile(r"\b\d{2}:\d{2}\b", re.ASCII)
AMOUNT_RE = re.compile(r"[¥￥]\s?([\d,]{2,7})")

_WS_RE = re.compile(r"\s+")
_TRAILING_PUNCT_RE = re.compile(r"[，,;；\s]+$")
# Price, remaining-seat and booking markers that end the descriptive part of a snippet
_NOISE_RE = re.compile(r"¥|￥|余\d+张|选择|選擇|预订|預訂|订|訂")

_TRANSFER_COUNT_RE = re.compile(r"(\d+)次中转")
_TRANSFER_WORD_RE = re.compile(r"中转|转机|转\s*[\u4e00-\u9fa5A-Za-z]")
_TRANSFER_INFO_RE = re.compile(r"(转[^。；\n]{0,30}\d+时\d+分|中转[^。；\n]{0,20}|转机[^。；\n]{0,20})")
_STOPOVER_WORD_RE = re.compile(r"经停|停\s*[\u4e00-\u9fa5A-Za-z]{2,}")
_STOPOVER_INFO_RE = re.compile(r"(经停[^。；\n]{0,60}|停\s*[\u4e00-\u9fa5A-Za-z]{2,8})")
_TOOLTIP_PREFIX_RE = re.compile(r"^经停信息\s*")

STOPOVER_TAG = "经停"


@dataclass(frozen=True)
class CardSnapshot:
    """Visible content of one result card, as read from the page."""

    index: int
    text: str
    has_action: bool
    price_text: str = ""
    transfer_text: str = ""
    has_stop_tag: bool = False


def clean(text: str | None) -> str:
    """Collapse whitespace and drop trailing separators."""
    collapsed = _WS_RE.sub(" ", text or "")
    return _TRAILING_PUNCT_RE.sub("", collapsed).strip()


def trim_noise(text: str | None) -> str:
    """Cut a snippet at the first price or booking marker."""
    s = clean(text)
    if not s:
        return ""
    match = _NOISE_RE.search(s)
    if match and match.start() > 0:
        s = s[: match.start()]
    return clean(s)


def _amount_from(match: re.Match) -> int | None:
    digits = match.group(1).replace(",", "")
    if len(digits) < 2:
        return None
    return int(digits)


def parse_price(price_text: str, card_text: str) -> Price | None:
    """
    Extract the fare amount from a card.

    The dedicated price element wins; otherwise the first currency amount in
    the whole card text is used. Amounts with fewer than two digits are
    treated as garbled and rejected.
    """
    element_text = clean(price_text)
    match = AMOUNT_RE.search(element_text)
    if match:
        amount = _amount_from(match)
        if amount is not None:
            return Price(amount=amount, text=element_text)

    match = AMOUNT_RE.search(card_text or "")
    if not match:
        return None
    amount = _amount_from(match)
    if amount is None:
        return None
    return Price(amount=amount, text=match.group(0))


def _transfer_by_text(text: str) -> int:
    match = _TRANSFER_COUNT_RE.search(text)
    if match:
        return int(match.group(1))
    return 1 if _TRANSFER_WORD_RE.search(text) else 0


def _first_group(pattern: re.Pattern, text: str) -> str:
    match = pattern.search(text)
    return match.group(1) if match else ""


def normalize_card(card: CardSnapshot) -> FareRecord | None:
    """Parse one card, or return None when a required field is missing."""
    text = clean(card.text)
    if not text or not card.has_action:
        return None

    designators = FLIGHT_RE.findall(text)
    if not designators:
        return None
    times = CLOCK_RE.findall(text)
    if len(times) < 2:
        return None
    price = parse_price(card.price_text, text)
    if price is None:
        return None

    chain = tuple(dict.fromkeys(designators))
    transfer_count = max(len(chain) - 1, _transfer_by_text(text))
    stopover_count = 1 if card.has_stop_tag or _STOPOVER_WORD_RE.search(text) else 0

    transfer_source = clean(card.transfer_text) or _first_group(_TRANSFER_INFO_RE, text)
    return FareRecord(
        flight_chain=chain,
        dep=times[0],
        arr=times[1],
        price=price,
        segment_count=len(chain),
        transfer_count=transfer_count,
        stopover_count=stopover_count,
        transfer_info=trim_noise(transfer_source),
        stopover_info=trim_noise(_first_group(_STOPOVER_INFO_RE, text)),
    )


def clean_tooltip(text: str | None) -> str:
    """Normalize stopover tooltip text revealed by hovering the stop tag."""
    return trim_noise(_TOOLTIP_PREFIX_RE.sub(f"{STOPOVER_TAG} ", clean(text)))


def extract_round(
    cards: Iterable[CardSnapshot],
    reveal_stopover: Callable[[int], str | None] | None = None,
) -> list[FareRecord]:
    """
    Normalize every card visible in one round.

    Duplicate identity keys within the round are dropped (first wins). For
    stopover fares whose card carries a stop tag, ``reveal_stopover`` is asked
    for the tooltip text; this is best-effort and never invalidates a record.
    """
    records: list[FareRecord] = []
    stop_tag_cards: list[int | None] = []
    seen: set[tuple] = set()

    for card in cards:
        record = normalize_card(card)
        if record is None or record.key in seen:
            continue
        seen.add(record.key)
        records.append(record)
        stop_tag_cards.append(card.index if card.has_stop_tag else None)

    if reveal_stopover is None:
        return records

    for pos, (record, index) in enumerate(zip(records, stop_tag_cards)):
        if not record.stopover_count or index is None:
            continue
        try:
            tip = clean_tooltip(reveal_stopover(index))
        except Exception as e:
            logger.debug("Stopover tooltip for card %d unavailable: %s", index, e)
            continue
        if tip:
            records[pos] = replace(record, stopover_info=tip)

    return records
