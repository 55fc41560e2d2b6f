import json
import subprocess

import pytest

from fare_watch.errors import SearchError
from fare_watch.models import FareRecord, MonitorRecord, Price
from fare_watch.runner import SubprocessSearch, check_monitors, check_one, fares_from_payload, run_all
from fare_watch.storage import load_monitors, save_monitors


def fare_dict(flight: str, price: int, dep: str = "08:00", arr: str = "10:30", **kwargs) -> dict:
    fare = FareRecord(flight_chain=tuple(flight.split("+")), dep=dep, arr=arr, price=Price(price, f"¥{price}"), **kwargs)
    return fare.to_dict()


def payload(*flights: dict) -> dict:
    return {"flights": list(flights), "view": {"table": "TABLE"}}


class FakeSearch:
    def __init__(self, responses):
        self.responses = list(responses)
        self.calls = []

    def __call__(self, mode, args):
        self.calls.append((mode, args))
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


class Outbox(list):
    def __call__(self, message):
        self.append(message)
        return True


def clock():
    return 1_700_000_000_000


def outbound_day(**fields) -> MonitorRecord:
    base = {"id": "day", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "mode": "outbound_day"}
    base.update(fields)
    return MonitorRecord.from_dict(base)


def test_first_observation_sets_baseline_without_notifying():
    search = FakeSearch([payload(fare_dict("CZ100", 1200), fare_dict("MU200", 980))])
    outbox = Outbox()

    result = check_one(outbound_day(), search, outbox, clock)

    assert outbox == []
    assert result.notified is False
    assert result.record.last_observed_min_price == 980
    assert result.record.last_observed_flight == "MU200"
    assert result.record.last_checked == clock()
    assert "first observation" in result.report
    assert "TABLE" in result.report
    assert search.calls == [("outbound_day", ["SZX", "CKG", "2026-04-03", "oneway", "2026-04-04"])]


def test_price_change_notifies_once():
    search = FakeSearch([payload(fare_dict("MU200", 980))])
    outbox = Outbox()

    result = check_one(outbound_day(lastObservedMinPrice=1100), search, outbox, clock)

    assert result.notified is True
    assert len(outbox) == 1
    assert "Previous ¥1100 -> now ¥980 (down ¥120)" in outbox[0]
    assert result.record.last_observed_min_price == 980


def test_unchanged_price_does_not_notify():
    search = FakeSearch([payload(fare_dict("MU200", 980))])
    outbox = Outbox()

    result = check_one(outbound_day(lastObservedMinPrice=980), search, outbox, clock)

    assert outbox == []
    assert result.record.last_observed_min_price == 980


def test_notifier_failure_does_not_fail_the_check():
    def broken(message):
        raise RuntimeError("gateway down")

    search = FakeSearch([payload(fare_dict("MU200", 980))])

    result = check_one(outbound_day(lastObservedMinPrice=1100), search, broken, clock)

    assert result.notified is False
    assert result.record.last_observed_min_price == 980


def test_empty_results_keep_baseline():
    search = FakeSearch([{"flights": []}])

    result = check_one(outbound_day(lastObservedMinPrice=1100), search, Outbox(), clock)

    assert result.record.last_observed_min_price == 1100
    assert result.record.last_checked == clock()
    assert result.report.endswith("No flights available.")


def test_missing_locked_return_keeps_baseline():
    record = MonitorRecord.from_dict({
        "id": "lock", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "returnDate": "2026-04-07",
        "mode": "roundtrip_locked", "outboundFlight": "CZ3455", "returnFlight": "ZH9464",
        "lastObservedTotalPrice": 2800,
    })
    search = FakeSearch([payload(fare_dict("ZH9001", 2500))])
    outbox = Outbox()

    result = check_one(record, search, outbox, clock)

    assert outbox == []
    assert result.record.last_observed_total_price == 2800
    assert "Return flight not found: ZH9464" in result.report


def test_return_after_outbound_persists_increment():
    record = MonitorRecord.from_dict({
        "id": "ret", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "returnDate": "2026-04-07",
        "mode": "return_after_outbound", "outboundFlight": "CZ3455", "outboundPrice": 2800,
    })
    search = FakeSearch([payload(fare_dict("ZH9464", 3300, extra=500), fare_dict("ZH9001", 3400, extra=600))])

    result = check_one(record, search, Outbox(), clock)

    assert result.record.last_observed_best_total == 3300
    assert result.record.last_observed_best_return_price == 500
    assert result.record.last_observed_best_return_flight == "ZH9464"
    assert search.calls[0][1][-1] == "2800"


def test_unknown_mode_is_a_configuration_error():
    search = FakeSearch([])

    result = check_one(outbound_day(mode="weekly"), search, Outbox(), clock)

    assert search.calls == []
    assert "Configuration error: unsupported mode weekly" in result.report
    assert result.record.last_checked == clock()


def test_one_failure_does_not_stop_the_run():
    records = [outbound_day(id="a"), outbound_day(id="b"), outbound_day(id="c")]
    search = FakeSearch([
        payload(fare_dict("MU200", 980)),
        SearchError("Search timed out after 30s"),
        payload(fare_dict("CA300", 1500)),
    ])

    result = run_all(records, search, Outbox(), clock)

    assert [r.id for r in result.records] == ["a", "b", "c"]
    assert all(r.last_checked == clock() for r in result.records)
    assert len(result.reports) == 3
    assert result.reports[1] == "✈️ b\nQuery failed: Search timed out after 30s"
    assert result.records[1].last_observed_min_price is None
    assert result.records[2].last_observed_min_price == 1500
    assert result.dirty is True


def test_disabled_monitors_are_skipped_untouched():
    disabled = outbound_day(id="off", status="disabled")
    search = FakeSearch([])

    result = run_all([disabled], search, Outbox(), clock)

    assert result.records == [disabled]
    assert result.reports == []
    assert result.dirty is False


def test_legacy_record_is_migrated_then_checked():
    legacy = MonitorRecord.from_dict({
        "id": "old", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "returnDate": "2026-04-07",
        "flight": "CZ3455", "refPrice": 2800, "lastPrice": 3300,
    })
    search = FakeSearch([payload(fare_dict("ZH9464", 3200))])
    outbox = Outbox()

    result = run_all([legacy], search, outbox, clock)

    record = result.records[0]
    assert search.calls[0][0] == "return_after_outbound"
    assert record.mode == "return_after_outbound"
    assert record.last_observed_best_total == 3200
    assert len(outbox) == 1


def test_check_monitors_round_trips_the_store(tmp_path):
    store = tmp_path / "monitors.json"
    store.write_text(json.dumps([
        {"id": "day", "note": "keep me", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "mode": "outbound_day"},
    ]), encoding="utf-8")
    search = FakeSearch([payload(fare_dict("MU200", 980))])

    result = check_monitors(search, Outbox(), store)

    saved = json.loads(store.read_text(encoding="utf-8"))
    assert len(result.reports) == 1
    assert list(saved[0])[:2] == ["id", "note"]
    assert saved[0]["note"] == "keep me"
    assert saved[0]["lastObservedMinPrice"] == 980
    assert "lastChecked" in saved[0]


def test_check_monitors_keeps_entries_it_cannot_read(tmp_path):
    store = tmp_path / "monitors.json"
    store.write_text(json.dumps([
        "note: keep",
        {"id": "a", "depart": "SZX", "arrive": "CKG", "departDate": "2026-04-03", "mode": "outbound_day"},
        42,
    ]), encoding="utf-8")
    search = FakeSearch([{"flights": []}])

    result = check_monitors(search, Outbox(), store)

    saved = json.loads(store.read_text(encoding="utf-8"))
    assert len(search.calls) == 1
    assert len(result.reports) == 1
    assert saved[0] == "note: keep"
    assert saved[1]["id"] == "a"
    assert "lastChecked" in saved[1]
    assert saved[2] == 42


def test_check_monitors_with_empty_store(tmp_path):
    result = check_monitors(FakeSearch([]), Outbox(), tmp_path / "missing.json")

    assert result.reports == []
    assert not (tmp_path / "missing.json").exists()


def test_check_monitors_leaves_store_alone_when_nothing_changed(tmp_path):
    store = tmp_path / "monitors.json"
    save_monitors([outbound_day(status="disabled")], store)
    before = store.read_text(encoding="utf-8")

    check_monitors(FakeSearch([]), Outbox(), store)

    assert store.read_text(encoding="utf-8") == before
    assert load_monitors(store)[0].status == "disabled"


def test_fares_from_payload_tolerates_missing_flights():
    assert fares_from_payload({}) == []
    assert fares_from_payload({"flights": "nope"}) == []
    assert [f.flight for f in fares_from_payload({"flights": [fare_dict("MU200", 980), 7]})] == ["MU200"]


def test_subprocess_search_parses_stdout(monkeypatch):
    seen = {}

    def fake_run(cmd, **kwargs):
        seen["cmd"] = cmd
        seen["timeout"] = kwargs["timeout"]
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(payload(fare_dict("MU200", 980))), stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)

    data = SubprocessSearch(timeout=5, python="py")("outbound_day", ["SZX", "CKG"])

    assert seen["cmd"] == ["py", "-m", "fare_watch.cli", "search", "outbound_day", "SZX", "CKG"]
    assert seen["timeout"] == 5
    assert data["flights"][0]["flight"] == "MU200"


def test_subprocess_search_timeout_raises(monkeypatch):
    def fake_run(cmd, **kwargs):
        raise subprocess.TimeoutExpired(cmd, kwargs["timeout"])

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(SearchError, match="timed out after 5s"):
        SubprocessSearch(timeout=5)("outbound_day", [])


def test_subprocess_search_failure_uses_last_stderr_line(monkeypatch):
    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 1, stdout="", stderr="Traceback...\nError: page never loaded\n")

    monkeypatch.setattr(subprocess, "run", fake_run)

    with pytest.raises(SearchError, match="page never loaded"):
        SubprocessSearch(timeout=5)("outbound_day", [])


def test_subprocess_search_rejects_bad_output(monkeypatch):
    outputs = iter(["not json", "[1, 2]"])

    def fake_run(cmd, **kwargs):
        return subprocess.CompletedProcess(cmd, 0, stdout=next(outputs), stderr="")

    monkeypatch.setattr(subprocess, "run", fake_run)
    search = SubprocessSearch(timeout=5)

    with pytest.raises(SearchError, match="invalid JSON"):
        search("outbound_day", [])
    with pytest.raises(SearchError, match="non-object"):
        search("outbound_day", [])


def test_search_timeout_from_env(monkeypatch):
    monkeypatch.setenv("SEARCH_TIMEOUT_SECONDS", "12")

    assert SubprocessSearch().timeout == 12.0
