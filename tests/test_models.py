import math

from fare_watch.models import FareRecord, MonitorRecord, Price, RouteType, to_number


def test_to_number():
    assert to_number("2800") == 2800
    assert to_number(" 12.5 ") == 12.5
    assert to_number(3.0) == 3
    assert to_number(None, None) is None
    assert to_number(True, None) is None
    assert to_number("abc", -1) == -1
    assert to_number(math.nan, None) is None
    assert to_number(math.inf, None) is None


def test_fare_to_dict_omits_unset_optionals():
    fare = FareRecord(flight_chain=("MU5101", "MU2502"), dep="07:00", arr="13:30", price=Price(980, "¥980"),
                      segment_count=2, transfer_count=1)

    data = fare.to_dict()

    assert data["flight"] == "MU5101+MU2502"
    assert data["primaryFlight"] == "MU5101"
    assert data["routeType"] == "transfer"
    assert data["stops"] == 1
    assert data["isTransfer"] is True
    assert "depDateTime" not in data
    assert "extra" not in data


def test_fare_from_dict_tolerates_loose_payloads():
    fare = FareRecord.from_dict({"flight": "CA1234", "dep": "09:00", "arr": "14:20", "price": "1500",
                                 "routeType": "stopover", "stops": 1, "extra": "450.0"})

    assert fare.price == Price(1500, "¥1500")
    assert fare.route_type is RouteType.STOPOVER
    assert fare.stopover_count == 1
    assert fare.extra == 450


def test_monitor_round_trip_keeps_key_order_and_unknown_keys():
    data = {"note": "x", "id": "m1", "mode": "outbound_day", "lastObservedMinPrice": None}

    record = MonitorRecord.from_dict(data)

    assert record.extra_fields == {"note": "x"}
    assert record.to_dict() == data
    assert list(record.to_dict()) == list(data)


def test_monitor_defaults():
    record = MonitorRecord.from_dict({"mode": "nonsense"})

    assert record.is_enabled is True
    assert record.monitor_mode is None
    assert record.label == "unknown"
    assert MonitorRecord(status="disabled").is_enabled is False
