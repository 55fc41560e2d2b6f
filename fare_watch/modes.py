"""Monitor modes: how each mode queries, picks a target fare, compares and persists."""

from collections.abc import Callable
from dataclasses import dataclass

from fare_watch.enricher import add_days
from fare_watch.formatting import format_delta, leg_route, leg_time, yen
from fare_watch.models import FareRecord, MonitorMode, MonitorRecord, TripType, to_number

ReportTail = Callable[[MonitorRecord, FareRecord, int, float | None], list[str]]


def notify_condition(previous: float | None, current: float) -> bool:
    """A change notifies only once a baseline exists and the value moved."""
    return previous is not None and previous != current


def pick_cheapest(fares: list[FareRecord]) -> FareRecord | None:
    """Lowest amount; the earliest fare wins a tie."""
    if not fares:
        return None
    return min(fares, key=lambda f: f.price.amount)


def price_amount(fare: FareRecord) -> int:
    return fare.price.amount


def _previous(value) -> float | None:
    return to_number(value, None)


def _leg_snapshot(fare: FareRecord) -> tuple[str | None, str | None]:
    return (fare.dep_datetime or fare.dep or None, fare.arr_datetime or fare.arr or None)


def _info_line(fare: FareRecord) -> str:
    return f"Stop details: {fare.leg_info}" if fare.leg_info else ""


def _change_line(label: str, current: int, previous: float | None) -> str:
    if previous is None:
        return f"{label}: {yen(current)} (first observation)"
    return f"{label}: was {yen(previous)} -> now {yen(current)} ({format_delta(current - previous)})"


@dataclass(frozen=True)
class ModeHandler:
    """Behaviour table for one monitor mode."""

    search_mode: MonitorMode
    query_args: Callable[[MonitorRecord], list[str]]
    report_title: Callable[[MonitorRecord], str]
    empty_message: str
    select_target: Callable[[list[FareRecord], MonitorRecord], FareRecord | None]
    missing_target_message: Callable[[MonitorRecord], str]
    current_value: Callable[[FareRecord], int]
    previous_value: Callable[[MonitorRecord], float | None]
    report_tail: ReportTail
    persist: Callable[[MonitorRecord, FareRecord, int], MonitorRecord]
    notify_title: str
    notify_detail: Callable[[MonitorRecord, FareRecord, int], list[str]]


def _arg(value) -> str:
    return "" if value is None else str(value)


# ── roundtrip_locked ─────────────────────────────────────────────────────────


def _locked_tail(m: MonitorRecord, target: FareRecord, current: int, previous: float | None) -> list[str]:
    return [
        f"Outbound: {m.outbound_flight}  Return: {m.return_flight}",
        f"Baseline total: {yen(to_number(m.baseline_total_price, 0))}",
        _change_line("Current total", current, previous),
        _info_line(target),
    ]


def _locked_persist(m: MonitorRecord, target: FareRecord, current: int) -> MonitorRecord:
    dep, arr = _leg_snapshot(target)
    return m.evolve(
        last_observed_total_price=current,
        last_observed_return_dep=dep,
        last_observed_return_arr=arr,
    )


ROUNDTRIP_LOCKED = ModeHandler(
    search_mode=MonitorMode.ROUNDTRIP_LOCKED,
    query_args=lambda m: [_arg(v) for v in (m.depart, m.arrive, m.depart_date, m.return_date, m.outbound_flight)],
    report_title=lambda m: f"✈️ Locked round trip: {m.depart} -> {m.arrive}  {m.depart_date}/{m.return_date}",
    empty_message="No return options found.",
    select_target=lambda fares, m: next((f for f in fares if f.flight == m.return_flight), None),
    missing_target_message=lambda m: f"Return flight not found: {m.return_flight}",
    current_value=price_amount,
    previous_value=lambda m: _previous(m.last_observed_total_price),
    report_tail=_locked_tail,
    persist=_locked_persist,
    notify_title="✈️ Locked round-trip price changed",
    notify_detail=lambda m, target, current: [
        f"{m.depart}->{m.arrive}  {m.depart_date}/{m.return_date}",
        f"Outbound {m.outbound_flight} | Return {m.return_flight}",
        f"Baseline total {yen(to_number(m.baseline_total_price, 0))}",
    ],
)


# ── outbound_day ─────────────────────────────────────────────────────────────


def trip_type_of(m: MonitorRecord) -> str:
    if m.trip_type:
        return m.trip_type
    return TripType.ROUNDTRIP_CONTEXT.value if m.return_date else TripType.ONEWAY.value


def _outbound_args(m: MonitorRecord) -> list[str]:
    return_date = m.return_date or add_days(m.depart_date or "", 1)
    return [_arg(v) for v in (m.depart, m.arrive, m.depart_date, trip_type_of(m), return_date)]


def _outbound_tail(m: MonitorRecord, target: FareRecord, current: int, previous: float | None) -> list[str]:
    return [
        _change_line("Lowest price", current, previous),
        f"Cheapest flight: {target.flight}  {leg_time(target)} [{leg_route(target)}]",
        _info_line(target),
        f"Trip type: {trip_type_of(m)}",
    ]


def _outbound_persist(m: MonitorRecord, target: FareRecord, current: int) -> MonitorRecord:
    dep, arr = _leg_snapshot(target)
    return m.evolve(
        last_observed_min_price=current,
        trip_type=trip_type_of(m),
        last_observed_flight=target.flight or None,
        last_observed_dep=dep,
        last_observed_arr=arr,
    )


OUTBOUND_DAY = ModeHandler(
    search_mode=MonitorMode.OUTBOUND_DAY,
    query_args=_outbound_args,
    report_title=lambda m: f"✈️ Outbound: {m.depart} -> {m.arrive}  {m.depart_date}",
    empty_message="No flights available.",
    select_target=lambda fares, m: pick_cheapest(fares),
    missing_target_message=lambda m: "No target flight found.",
    current_value=price_amount,
    previous_value=lambda m: _previous(m.last_observed_min_price),
    report_tail=_outbound_tail,
    persist=_outbound_persist,
    notify_title="✈️ Lowest outbound price for the day changed",
    notify_detail=lambda m, target, current: [
        f"{m.depart}->{m.arrive}  {m.depart_date}",
        f"Trip type: {trip_type_of(m)}",
        f"Cheapest now: {target.flight} {leg_time(target)} [{leg_route(target)}]",
    ],
)


# ── return_after_outbound ────────────────────────────────────────────────────


def return_increment(m: MonitorRecord, target: FareRecord, current: int) -> int | None:
    """
    Cost of the return leg on top of the locked outbound price.

    Taken from the search payload when present, else ``current - outboundPrice``.
    Unknown (None) when the outbound price is missing or not positive.
    """
    if target.extra is not None:
        return target.extra
    outbound_price = to_number(m.outbound_price, None)
    if outbound_price is None or outbound_price <= 0:
        return None
    return int(current - outbound_price)


def _return_args(m: MonitorRecord) -> list[str]:
    outbound_price = to_number(m.outbound_price, 0)
    return [_arg(v) for v in (m.depart, m.arrive, m.depart_date, m.return_date, m.outbound_flight, outbound_price)]


def _return_tail(m: MonitorRecord, target: FareRecord, current: int, previous: float | None) -> list[str]:
    increment = return_increment(m, target, current)
    return [
        f"Booked outbound: {m.outbound_flight}  {yen(to_number(m.outbound_price, None))}",
        _change_line("Best total", current, previous),
        f"Best return: {target.flight}  {leg_time(target)} [{leg_route(target)}] +{yen(increment)}",
        _info_line(target),
    ]


def _return_persist(m: MonitorRecord, target: FareRecord, current: int) -> MonitorRecord:
    dep, arr = _leg_snapshot(target)
    return m.evolve(
        last_observed_best_total=current,
        last_observed_best_return_price=return_increment(m, target, current),
        last_observed_best_return_flight=target.flight or None,
        last_observed_best_return_dep=dep,
        last_observed_best_return_arr=arr,
    )


RETURN_AFTER_OUTBOUND = ModeHandler(
    search_mode=MonitorMode.RETURN_AFTER_OUTBOUND,
    query_args=_return_args,
    report_title=lambda m: f"✈️ Best return: {m.depart} -> {m.arrive}  {m.depart_date}/{m.return_date}",
    empty_message="No return options found.",
    select_target=lambda fares, m: pick_cheapest(fares),
    missing_target_message=lambda m: "No target flight found.",
    current_value=price_amount,
    previous_value=lambda m: _previous(m.last_observed_best_total),
    report_tail=_return_tail,
    persist=_return_persist,
    notify_title="✈️ Best round-trip total for the booked outbound changed",
    notify_detail=lambda m, target, current: [
        f"{m.depart}->{m.arrive}  {m.depart_date}/{m.return_date}",
        f"Booked outbound: {m.outbound_flight} ({yen(to_number(m.outbound_price, None))})",
        f"Best return now: {target.flight} {leg_time(target)} [{leg_route(target)}] "
        f"(+{yen(return_increment(m, target, current))})",
    ],
)


MODE_HANDLERS: dict[MonitorMode, ModeHandler] = {
    MonitorMode.ROUNDTRIP_LOCKED: ROUNDTRIP_LOCKED,
    MonitorMode.OUTBOUND_DAY: OUTBOUND_DAY,
    MonitorMode.RETURN_AFTER_OUTBOUND: RETURN_AFTER_OUTBOUND,
}


def handler_for(mode: MonitorMode | None) -> ModeHandler | None:
    return MODE_HANDLERS.get(mode) if mode is not None else None


def change_message(handler: ModeHandler, m: MonitorRecord, target: FareRecord, current: int, previous: float) -> str:
    """Notification text for a detected price change."""
    lines = [handler.notify_title, *handler.notify_detail(m, target, current)]
    lines.append(f"Previous {yen(previous)} -> now {yen(current)} ({format_delta(current - previous)})")
    return "\n".join(lines)
