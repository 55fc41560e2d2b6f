"""Incremental fare collection over an infinitely scrolling result page."""

import logging
from collections.abc import Iterable
from typing import Protocol

from fare_watch.enricher import enrich
from fare_watch.models import FareRecord
from fare_watch.normalizer import CardSnapshot, extract_round

logger = logging.getLogger(__name__)

MAX_ROUNDS = 18
STABLE_ROUNDS = 2
SCROLL_FRACTION = 0.9
SETTLE_MS = 900

FareKey = tuple[str, str, str, int]


class CollectorPage(Protocol):
    """Page operations the collector needs."""

    def read_cards(self) -> list[CardSnapshot]: ...

    def reveal_stopover(self, index: int) -> str | None: ...

    def at_bottom(self) -> bool: ...

    def scroll_forward(self, fraction: float) -> None: ...

    def settle(self, ms: int) -> None: ...


def merge(merged: dict[FareKey, FareRecord], records: Iterable[FareRecord]) -> int:
    """Add unseen fares to ``merged`` (first seen wins); return how many were added."""
    added = 0
    for record in records:
        if record.key not in merged:
            merged[record.key] = record
            added += 1
    return added


def sort_by_price(records: Iterable[FareRecord]) -> list[FareRecord]:
    """Ascending by amount; ties keep their first-seen order."""
    return sorted(records, key=lambda r: r.price.amount)


class IncrementalCollector:
    """
    Collect every fare on a lazily loading result list.

    Each round extracts the visible cards, merges them by identity key and
    checks for convergence: the merged size must be unchanged for
    ``stable_rounds`` consecutive rounds *and* the page must be scrolled to
    the bottom. Otherwise the page is scrolled forward and given time to
    settle. ``max_rounds`` bounds the loop on pages that never stop loading;
    hitting it is not an error.
    """

    def __init__(
        self,
        page: CollectorPage,
        *,
        max_rounds: int = MAX_ROUNDS,
        stable_rounds: int = STABLE_ROUNDS,
        scroll_fraction: float = SCROLL_FRACTION,
        settle_ms: int = SETTLE_MS,
    ) -> None:
        self.page = page
        self.max_rounds = max_rounds
        self.stable_rounds = stable_rounds
        self.scroll_fraction = scroll_fraction
        self.settle_ms = settle_ms
        self.rounds = 0

    def collect(self, base_date: str | None = None) -> list[FareRecord]:
        merged: dict[FareKey, FareRecord] = {}
        stable = 0
        last_count = 0
        converged = False
        self.rounds = 0

        for round_no in range(self.max_rounds):
            self.rounds = round_no + 1
            records = extract_round(self.page.read_cards(), self.page.reveal_stopover)
            added = merge(merged, records)

            count = len(merged)
            stable = stable + 1 if count == last_count else 0
            last_count = count
            logger.debug(
                "Round %d: %d visible, %d new, %d total (stable %d)",
                self.rounds, len(records), added, count, stable,
            )

            if stable >= self.stable_rounds and self.page.at_bottom():
                converged = True
                break

            self.page.scroll_forward(self.scroll_fraction)
            self.page.settle(self.settle_ms)

        if not converged:
            logger.info(
                "Collection stopped at round cap (%d) with %d fares",
                self.max_rounds, len(merged),
            )

        fares: Iterable[FareRecord] = merged.values()
        if base_date:
            fares = [enrich(f, base_date) for f in fares]
        return sort_by_price(fares)
