"""Text rendering for fares, tables and price changes."""

from fare_watch.models import FareRecord, RouteType


def yen(value: float | None) -> str:
    if value is None:
        return "¥?"
    if isinstance(value, float) and value.is_integer():
        value = int(value)
    return f"¥{value}"


def format_delta(delta: float) -> str:
    if delta > 0:
        return f"up {yen(delta)}"
    if delta < 0:
        return f"down {yen(abs(delta))}"
    return "no change"


def leg_time(fare: FareRecord) -> str:
    """Absolute times when enriched, bare clock times otherwise."""
    if fare.dep_datetime or fare.arr_datetime:
        return f"{fare.dep_datetime or '--'} -> {fare.arr_datetime or '--'}"
    return f"{fare.dep or '--:--'}->{fare.arr or '--:--'}"


def leg_route(fare: FareRecord) -> str:
    if fare.route_type is RouteType.TRANSFER:
        return f"{fare.transfer_count or 1} transfer(s)"
    if fare.route_type is RouteType.STOPOVER:
        return f"{fare.stopover_count or 1} stop(s)"
    return "direct"


def render_table(title: str, flights: list[FareRecord], show_extra: bool = False) -> str:
    """Fixed-width fare table wrapped in a code fence."""
    lines = [f"{title} ({len(flights)} flights)", "```"]
    header = "No. | Flight   | Date/time                      | Route       | Price"
    if show_extra:
        header += "  | Return"
    lines.append(header)
    lines.append("-" * len(header))
    for i, fare in enumerate(flights, start=1):
        row = (
            f"{i:>3} | {(fare.flight or '-'):<8} | {leg_time(fare)[:30]:<30} | "
            f"{leg_route(fare):<11} | {fare.price.text:<6}"
        )
        if show_extra:
            row += f" | +{yen(fare.extra)}"
        lines.append(row)
    lines.append("```")
    return "\n".join(lines)
