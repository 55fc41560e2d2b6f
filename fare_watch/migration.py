"""Upgrade monitor records written before monitors carried a mode tag."""

import logging

from fare_watch.models import MonitorMode, MonitorRecord, TripType, to_number

logger = logging.getLogger(__name__)


def classify_legacy(record: MonitorRecord) -> MonitorMode:
    """A fixed flight with a reference price was a booked outbound; anything else watched a day."""
    ref_price = to_number(record.ref_price, None)
    if record.flight and ref_price is not None and ref_price > 0:
        return MonitorMode.RETURN_AFTER_OUTBOUND
    return MonitorMode.OUTBOUND_DAY


def migrate(record: MonitorRecord) -> tuple[MonitorRecord, bool]:
    """
    Return ``(record, mutated)``, assigning a mode to a legacy record.

    Records that already carry a mode come back unchanged with ``False``.
    Legacy keys (``flight``, ``refPrice``, ``lastPrice``) are left in place.
    """
    if record.mode:
        return record, False

    mode = classify_legacy(record)
    if mode is MonitorMode.RETURN_AFTER_OUTBOUND:
        migrated = record.evolve(
            mode=mode,
            outbound_flight=record.outbound_flight or record.flight,
            outbound_price=to_number(record.ref_price, None),
            last_observed_best_total=to_number(record.last_price, None),
        )
    else:
        trip_type = TripType.ROUNDTRIP_CONTEXT if record.return_date else TripType.ONEWAY
        # lastPrice tracked a single flight and is not a day-minimum baseline.
        migrated = record.evolve(mode=mode, trip_type=record.trip_type or trip_type.value)

    logger.info("Migrated legacy monitor %s to %s", record.label, mode.value)
    return migrated, True
