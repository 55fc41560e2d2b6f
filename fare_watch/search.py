"""Fare search: page URLs, collection and the per-mode search payloads."""

import logging
from dataclasses import replace
from typing import Any
from urllib.parse import quote

from fare_watch.browser import PlaywrightCardPage, click_outbound, open_page, prepare_page
from fare_watch.collector import IncrementalCollector
from fare_watch.enricher import add_days
from fare_watch.errors import SearchError, SearchUsageError
from fare_watch.formatting import render_table, yen
from fare_watch.models import FareRecord, MonitorMode, TripType, to_number

logger = logging.getLogger(__name__)

MAINLAND_CITY = {
    "SZX": "深圳", "CKG": "重庆", "PEK": "北京", "PKX": "北京",
    "SHA": "上海", "PVG": "上海", "CAN": "广州", "CTU": "成都",
    "XIY": "西安", "WUH": "武汉", "CSX": "长沙", "KMG": "昆明",
    "NKG": "南京", "HGH": "杭州", "XMN": "厦门", "TSN": "天津",
    "DLC": "大连", "TAO": "青岛", "SHE": "沈阳", "HRB": "哈尔滨",
    "URC": "乌鲁木齐", "KWE": "贵阳", "NNG": "南宁", "HAK": "海口",
    "SYX": "三亚", "LHW": "兰州", "TNA": "济南",
}
INTL_CITY = {"HKG": "中国香港", "MFM": "中国澳门", "TPE": "中国台北"}

DOMESTIC_BASE = "https://www.ly.com/flights/itinerary/roundtrip"
INTL_BASE = "https://www.ly.com/iflight/book1.html"

USAGE = {
    MonitorMode.OUTBOUND_DAY: "outbound_day DEPART ARRIVE DEPART_DATE [oneway|roundtrip_context] [RETURN_DATE]",
    MonitorMode.RETURN_AFTER_OUTBOUND: (
        "return_after_outbound DEPART ARRIVE DEPART_DATE RETURN_DATE OUTBOUND_FLIGHT OUTBOUND_PRICE"
    ),
    MonitorMode.ROUNDTRIP_LOCKED: "roundtrip_locked DEPART ARRIVE DEPART_DATE RETURN_DATE OUTBOUND_FLIGHT",
}


def is_mainland(code: str | None) -> bool:
    return (code or "").upper() in MAINLAND_CITY


def is_intl_route(depart: str, arrive: str) -> bool:
    return not is_mainland(depart) or not is_mainland(arrive)


def city_label(code: str) -> str:
    return MAINLAND_CITY.get(code) or INTL_CITY.get(code) or code


def build_domestic_url(depart: str, arrive: str, depart_date: str, return_date: str, outbound_flight: str = "") -> str:
    from_city = quote(MAINLAND_CITY.get(depart, depart))
    to_city = quote(MAINLAND_CITY.get(arrive, arrive))
    return (
        f"{DOMESTIC_BASE}/{depart}-{arrive}"
        f"?date={depart_date},{return_date}"
        f"&from={from_city}&to={to_city}"
        f"&fromairport=&toairport=&p=&childticket=0,0"
        f"&flightno={outbound_flight}"
    )


def build_intl_url(depart: str, arrive: str, depart_date: str, return_date: str, trip_type: str) -> str:
    if trip_type == TripType.ROUNDTRIP_CONTEXT.value:
        para = f"{depart}*{arrive}*{depart_date}*{return_date}*RT*1_0_0*Y|S|C|F"
    else:
        para = f"{depart}*{arrive}*{depart_date}**OW*1_0_0*Y|S|C|F"
    depart_inter = "0" if is_mainland(depart) else "true"
    arrive_inter = "0" if is_mainland(arrive) else "true"
    return (
        f"{INTL_BASE}?para={para}"
        f"&departureCity={quote(city_label(depart))}&departureCityIsInter={depart_inter}"
        f"&departAirport=&departAirportCode="
        f"&arrivalCity={quote(city_label(arrive))}&arrivalCityIsInter={arrive_inter}"
        f"&arriveAirport=&arriveAirportCode=&advanced=false"
    )


def search_url(depart: str, arrive: str, depart_date: str, return_date: str, trip_type: str) -> str:
    """International routes use the booking page; mainland pairs use the itinerary page."""
    if is_intl_route(depart, arrive):
        return build_intl_url(depart, arrive, depart_date, return_date, trip_type)
    return build_domestic_url(depart, arrive, depart_date, return_date)


# ── Rendering ────────────────────────────────────────────────────────────────


def build_view(payload: dict[str, Any], flights: list[FareRecord]) -> dict[str, str]:
    if not flights:
        return {"table": "No flights available."}
    mode = payload["mode"]
    depart, arrive = payload["depart"], payload["arrive"]
    if mode == MonitorMode.OUTBOUND_DAY.value:
        return {
            "table": render_table(
                f"Outbound: {depart} -> {arrive}  {payload['departDate']}  ({payload['tripType']})", flights
            ),
            "hint": "Pick an outbound flight (row number or flight number)",
        }
    if mode == MonitorMode.RETURN_AFTER_OUTBOUND.value:
        return {
            "table": render_table(
                f"Return: {arrive} -> {depart}  {payload['returnDate']} "
                f"(outbound {payload['outboundFlight']} {yen(payload['outboundPrice'])})",
                flights,
                show_extra=True,
            ),
            "hint": "Pick a return flight (row number or flight number)",
        }
    return {
        "table": render_table(
            f"Returns: {arrive} -> {depart}  {payload['returnDate']} (locked outbound {payload['outboundFlight']})",
            flights,
        ),
        "hint": "roundtrip_locked monitors a fixed outbound/return pair",
    }


# ── Collection ───────────────────────────────────────────────────────────────


def fetch_outbound(depart: str, arrive: str, depart_date: str, return_date: str, trip_type: str) -> tuple[str, list[FareRecord]]:
    """Collect one day of outbound fares; returns (final page URL, fares)."""
    url = search_url(depart, arrive, depart_date, return_date, trip_type)
    with open_page() as page:
        prepare_page(page, url)
        flights = IncrementalCollector(PlaywrightCardPage(page)).collect(depart_date)
        logger.info("Outbound %s->%s %s: %d fares", depart, arrive, depart_date, len(flights))
        return page.url, flights


def fetch_return(depart: str, arrive: str, depart_date: str, return_date: str, outbound_flight: str) -> tuple[str, list[FareRecord]]:
    """Select the outbound fare, then collect return fares priced as round-trip totals."""
    url = search_url(depart, arrive, depart_date, return_date, TripType.ROUNDTRIP_CONTEXT.value)
    with open_page() as page:
        prepare_page(page, url)
        if not click_outbound(page, outbound_flight):
            raise SearchError(f"Cannot select outbound flight: {outbound_flight}")
        flights = IncrementalCollector(PlaywrightCardPage(page)).collect(return_date)
        logger.info("Return %s->%s %s: %d fares", arrive, depart, return_date, len(flights))
        return page.url, flights


def _require(mode: MonitorMode, args: list[str], count: int) -> None:
    if len(args) < count or not all(args[:count]):
        raise SearchUsageError(f"Usage: {USAGE[mode]}")


def _finish(payload: dict[str, Any], flights: list[FareRecord]) -> dict[str, Any]:
    payload["flights"] = [f.to_dict() for f in flights]
    payload["view"] = build_view(payload, flights)
    return payload


def run_outbound_day(args: list[str]) -> dict[str, Any]:
    _require(MonitorMode.OUTBOUND_DAY, args, 3)
    depart, arrive, depart_date = args[:3]
    trip_arg = args[3] if len(args) > 3 else ""
    trip_type = TripType.ROUNDTRIP_CONTEXT.value if trip_arg == TripType.ROUNDTRIP_CONTEXT.value else TripType.ONEWAY.value
    return_date = (args[4] if len(args) > 4 else "") or add_days(depart_date, 1)

    source_url, flights = fetch_outbound(depart, arrive, depart_date, return_date, trip_type)
    payload = {
        "mode": MonitorMode.OUTBOUND_DAY.value,
        "tripType": trip_type,
        "depart": depart,
        "arrive": arrive,
        "departDate": depart_date,
        "returnDate": return_date,
        "sourceUrl": source_url,
    }
    return _finish(payload, flights)


def with_return_extra(flights: list[FareRecord], outbound_price: float | None) -> list[FareRecord]:
    """
    Annotate round-trip totals with the return increment over the outbound price.

    Without a positive outbound price the increment is unknown and left unset.
    """
    if outbound_price is None or outbound_price <= 0:
        if outbound_price is not None:
            logger.warning("Outbound price %s is not positive; return increments omitted", outbound_price)
        return flights
    return [replace(f, extra=int(f.price.amount - outbound_price)) for f in flights]


def run_return_after_outbound(args: list[str]) -> dict[str, Any]:
    _require(MonitorMode.RETURN_AFTER_OUTBOUND, args, 5)
    depart, arrive, depart_date, return_date, outbound_flight = args[:5]
    outbound_price = to_number(args[5] if len(args) > 5 else None, None)

    source_url, flights = fetch_return(depart, arrive, depart_date, return_date, outbound_flight)
    payload = {
        "mode": MonitorMode.RETURN_AFTER_OUTBOUND.value,
        "depart": depart,
        "arrive": arrive,
        "departDate": depart_date,
        "returnDate": return_date,
        "outboundFlight": outbound_flight,
        "outboundPrice": outbound_price if outbound_price is not None else 0,
        "sourceUrl": source_url,
    }
    return _finish(payload, with_return_extra(flights, outbound_price))


def run_roundtrip_locked(args: list[str]) -> dict[str, Any]:
    _require(MonitorMode.ROUNDTRIP_LOCKED, args, 5)
    depart, arrive, depart_date, return_date, outbound_flight = args[:5]

    source_url, flights = fetch_return(depart, arrive, depart_date, return_date, outbound_flight)
    payload = {
        "mode": MonitorMode.ROUNDTRIP_LOCKED.value,
        "depart": depart,
        "arrive": arrive,
        "departDate": depart_date,
        "returnDate": return_date,
        "outboundFlight": outbound_flight,
        "sourceUrl": source_url,
    }
    return _finish(payload, flights)


SEARCH_MODES = {
    MonitorMode.OUTBOUND_DAY: run_outbound_day,
    MonitorMode.RETURN_AFTER_OUTBOUND: run_return_after_outbound,
    MonitorMode.ROUNDTRIP_LOCKED: run_roundtrip_locked,
}


def search(mode: str, args: list[str]) -> dict[str, Any]:
    """Run a fare search for ``mode`` with its positional arguments."""
    try:
        monitor_mode = MonitorMode(mode)
    except ValueError:
        modes = " | ".join(m.value for m in MonitorMode)
        raise SearchUsageError(f"Unknown mode: {mode} (expected {modes})") from None
    return SEARCH_MODES[monitor_mode](list(args))
