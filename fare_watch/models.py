"""Data models for fare collection and price monitors."""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any


class RouteType(str, Enum):
    """How a fare gets from origin to destination."""

    DIRECT = "direct"
    TRANSFER = "transfer"
    STOPOVER = "stopover"


class MonitorMode(str, Enum):
    """Comparison strategy a monitor follows."""

    ROUNDTRIP_LOCKED = "roundtrip_locked"
    OUTBOUND_DAY = "outbound_day"
    RETURN_AFTER_OUTBOUND = "return_after_outbound"


class MonitorStatus(str, Enum):
    """Whether a monitor takes part in scheduled runs."""

    ENABLED = "enabled"
    DISABLED = "disabled"


class TripType(str, Enum):
    """Search context for a single-day outbound scan."""

    ONEWAY = "oneway"
    ROUNDTRIP_CONTEXT = "roundtrip_context"


def to_number(value: Any, fallback: float | None = 0) -> float | int | None:
    """Coerce a JSON value to a finite number, or return ``fallback``."""
    if isinstance(value, bool) or value is None:
        return fallback
    if isinstance(value, (int, float)):
        number = value
    else:
        try:
            number = float(str(value).strip())
        except ValueError:
            return fallback
    if number != number or number in (float("inf"), float("-inf")):
        return fallback
    if isinstance(number, float) and number.is_integer():
        return int(number)
    return number


@dataclass(frozen=True)
class Price:
    """Displayed fare amount."""

    amount: int
    text: str


@dataclass(frozen=True)
class FareRecord:
    """One deduplicated fare option extracted from a result page."""

    flight_chain: tuple[str, ...]
    dep: str
    arr: str
    price: Price
    segment_count: int = 1
    transfer_count: int = 0
    stopover_count: int = 0
    transfer_info: str = ""
    stopover_info: str = ""
    dep_datetime: str | None = None
    arr_datetime: str | None = None
    extra: int | None = None

    @property
    def flight(self) -> str:
        return "+".join(self.flight_chain)

    @property
    def primary_flight(self) -> str:
        return self.flight_chain[0] if self.flight_chain else ""

    @property
    def route_type(self) -> RouteType:
        if self.transfer_count > 0:
            return RouteType.TRANSFER
        if self.stopover_count > 0:
            return RouteType.STOPOVER
        return RouteType.DIRECT

    @property
    def stops(self) -> int:
        return self.transfer_count + self.stopover_count

    @property
    def is_transfer(self) -> bool:
        return self.stops > 0

    @property
    def key(self) -> tuple[str, str, str, int]:
        """Identity key: two cards with equal keys are the same fare."""
        return (self.flight, self.dep, self.arr, self.price.amount)

    @property
    def leg_info(self) -> str:
        return self.transfer_info or self.stopover_info

    def to_dict(self) -> dict[str, Any]:
        """Serialize to the search payload shape."""
        data: dict[str, Any] = {
            "primaryFlight": self.primary_flight,
            "flight": self.flight,
            "dep": self.dep,
            "arr": self.arr,
            "price": {"amount": self.price.amount, "text": self.price.text},
            "segmentCount": self.segment_count,
            "transferCount": self.transfer_count,
            "stopoverCount": self.stopover_count,
            "routeType": self.route_type.value,
            "stops": self.stops,
            "isTransfer": self.is_transfer,
            "transferInfo": self.transfer_info,
            "stopoverInfo": self.stopover_info,
        }
        if self.dep_datetime is not None:
            data["depDateTime"] = self.dep_datetime
        if self.arr_datetime is not None:
            data["arrDateTime"] = self.arr_datetime
        if self.extra is not None:
            data["extra"] = self.extra
        return data

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "FareRecord":
        """Build from a search payload entry, tolerating missing fields."""
        flight = str(data.get("flight") or "")
        chain = tuple(part for part in flight.split("+") if part)

        raw_price = data.get("price")
        if isinstance(raw_price, dict):
            amount = to_number(raw_price.get("amount"), 0)
            text = str(raw_price.get("text") or "")
        else:
            amount = to_number(raw_price, 0)
            text = ""
        amount = int(amount)
        price = Price(amount=amount, text=text or f"¥{amount}")

        transfer_count = int(to_number(data.get("transferCount"), 0))
        stopover_count = int(to_number(data.get("stopoverCount"), 0))
        # Older payloads only carry routeType/stops.
        if not transfer_count and not stopover_count:
            route = data.get("routeType")
            stops = int(to_number(data.get("stops"), 0))
            if route == RouteType.TRANSFER.value:
                transfer_count = max(stops, 1)
            elif route == RouteType.STOPOVER.value:
                stopover_count = max(stops, 1)
            elif route is None and stops > 0:
                transfer_count = stops

        extra = to_number(data.get("extra"), None)
        return cls(
            flight_chain=chain,
            dep=str(data.get("dep") or ""),
            arr=str(data.get("arr") or ""),
            price=price,
            segment_count=int(to_number(data.get("segmentCount"), len(chain) or 1)),
            transfer_count=transfer_count,
            stopover_count=stopover_count,
            transfer_info=str(data.get("transferInfo") or ""),
            stopover_info=str(data.get("stopoverInfo") or ""),
            dep_datetime=data.get("depDateTime"),
            arr_datetime=data.get("arrDateTime"),
            extra=int(extra) if extra is not None else None,
        )


# JSON store key -> MonitorRecord attribute
MONITOR_FIELDS: dict[str, str] = {
    "id": "id",
    "depart": "depart",
    "arrive": "arrive",
    "departDate": "depart_date",
    "returnDate": "return_date",
    "mode": "mode",
    "status": "status",
    "lastChecked": "last_checked",
    "tripType": "trip_type",
    "outboundFlight": "outbound_flight",
    "outboundPrice": "outbound_price",
    "returnFlight": "return_flight",
    "baselineTotalPrice": "baseline_total_price",
    # roundtrip_locked
    "lastObservedTotalPrice": "last_observed_total_price",
    "lastObservedReturnDep": "last_observed_return_dep",
    "lastObservedReturnArr": "last_observed_return_arr",
    # outbound_day
    "lastObservedMinPrice": "last_observed_min_price",
    "lastObservedFlight": "last_observed_flight",
    "lastObservedDep": "last_observed_dep",
    "lastObservedArr": "last_observed_arr",
    # return_after_outbound
    "lastObservedBestTotal": "last_observed_best_total",
    "lastObservedBestReturnPrice": "last_observed_best_return_price",
    "lastObservedBestReturnFlight": "last_observed_best_return_flight",
    "lastObservedBestReturnDep": "last_observed_best_return_dep",
    "lastObservedBestReturnArr": "last_observed_best_return_arr",
    # legacy (pre-mode) records
    "flight": "flight",
    "refPrice": "ref_price",
    "lastPrice": "last_price",
}


@dataclass(frozen=True)
class MonitorRecord:
    """A persisted price watch.

    Records are immutable: migration and persistence return new records via
    ``evolve``. Keys the model does not know are kept in ``extra_fields`` and
    written back untouched.
    """

    id: str | None = None
    depart: str | None = None
    arrive: str | None = None
    depart_date: str | None = None
    return_date: str | None = None
    mode: str | None = None
    status: str | None = None
    last_checked: int | None = None
    trip_type: str | None = None
    outbound_flight: str | None = None
    outbound_price: Any = None
    return_flight: str | None = None
    baseline_total_price: Any = None
    last_observed_total_price: Any = None
    last_observed_return_dep: str | None = None
    last_observed_return_arr: str | None = None
    last_observed_min_price: Any = None
    last_observed_flight: str | None = None
    last_observed_dep: str | None = None
    last_observed_arr: str | None = None
    last_observed_best_total: Any = None
    last_observed_best_return_price: Any = None
    last_observed_best_return_flight: str | None = None
    last_observed_best_return_dep: str | None = None
    last_observed_best_return_arr: str | None = None
    flight: str | None = None
    ref_price: Any = None
    last_price: Any = None
    extra_fields: dict[str, Any] = field(default_factory=dict, compare=False)
    key_order: tuple[str, ...] = field(default=(), compare=False)
    # Store entries that are not JSON objects ride along untouched.
    opaque: bool = field(default=False, compare=False)
    raw: Any = field(default=None, compare=False)

    @classmethod
    def passthrough(cls, value: Any) -> "MonitorRecord":
        """Wrap a store entry the model cannot interpret so it is written back as-is."""
        return cls(opaque=True, raw=value)

    @property
    def label(self) -> str:
        return self.id or "unknown"

    @property
    def is_enabled(self) -> bool:
        return (self.status or MonitorStatus.ENABLED.value) == MonitorStatus.ENABLED.value

    @property
    def monitor_mode(self) -> MonitorMode | None:
        """The mode tag as an enum, or None when absent or unrecognized."""
        if not self.mode:
            return None
        try:
            return MonitorMode(self.mode)
        except ValueError:
            return None

    def evolve(self, **changes: Any) -> "MonitorRecord":
        """Return a copy with ``changes`` applied."""
        for name, value in changes.items():
            if isinstance(value, Enum):
                changes[name] = value.value
        return replace(self, **changes)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "MonitorRecord":
        known: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in data.items():
            attr = MONITOR_FIELDS.get(key)
            if attr is None:
                extra[key] = value
            else:
                known[attr] = value
        return cls(**known, extra_fields=extra, key_order=tuple(data.keys()))

    def to_dict(self) -> Any:
        """Serialize to the store shape, keeping original key order first."""
        if self.opaque:
            return self.raw
        values = {key: getattr(self, attr) for key, attr in MONITOR_FIELDS.items()}
        out: dict[str, Any] = {}
        for key in self.key_order:
            if key in values:
                out[key] = values[key]
            elif key in self.extra_fields:
                out[key] = self.extra_fields[key]
        for key, value in values.items():
            if key not in out and value is not None:
                out[key] = value
        for key, value in self.extra_fields.items():
            out.setdefault(key, value)
        return out
