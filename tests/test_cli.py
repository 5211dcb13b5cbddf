from __future__ import annotations

import copy
import json

import httpx
import pytest

from kingtime import cli
from kingtime.integrations import Credential, KingTimeAdapter

from .payloads import BASE_URL, DAILY_WORKINGS, EMPLOYEE_KEY, record, timerecord_payload


@pytest.fixture(autouse=True)
def env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ("KINGTIME_EMPLOYEE_CODE", "TC_EMPLOYEE_NUMBER", "TC_KINGTIME_ACCESS_TOKEN", "LOG_LEVEL"):
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    monkeypatch.setenv("KINGTIME_ACCESS_TOKEN", "cli-token")
    monkeypatch.setenv("KINGTIME_EMPLOYEE_KEY", EMPLOYEE_KEY)


@pytest.fixture
def serve(monkeypatch):
    """Route the CLI adapter to a canned responder"""
    def install(responder):
        def build_adapter(settings):
            return KingTimeAdapter(
                Credential(settings.access_token),
                employee_key=settings.employee_key,
                base_url=BASE_URL,
                transport=httpx.MockTransport(responder),
            )
        monkeypatch.setattr(cli, "build_adapter", build_adapter)
    return install


def test_status_at_work(serve, capsys):
    payload = timerecord_payload([record("2016-05-01T09:00:00+09:00", "1")])
    serve(lambda request: httpx.Response(200, json=payload))

    assert cli.main(["status"]) == 0
    assert capsys.readouterr().out.strip() == "at work"


def test_status_not_at_work(serve, capsys):
    serve(lambda request: httpx.Response(200, json=timerecord_payload([])))

    assert cli.main(["status"]) == 0
    assert capsys.readouterr().out.strip() == "not at work (or on a break)"


def test_clock_in_prints_confirmed_time(serve, capsys):
    body = {"date": "2016-05-01", "time": "2016-05-01T09:00:00+09:00", "code": "1"}
    serve(lambda request: httpx.Response(200, json=body))

    assert cli.main(["in"]) == 0
    assert capsys.readouterr().out.strip() == "in: 2016-05-01T09:00:00+09:00"


def test_clock_out_prints_confirmed_time(serve, capsys):
    body = {"date": "2016-05-01", "time": "2016-05-01T18:00:00+09:00", "code": "2"}
    serve(lambda request: httpx.Response(200, json=body))

    assert cli.main(["out"]) == 0
    assert capsys.readouterr().out.strip() == "out: 2016-05-01T18:00:00+09:00"


def test_ls_lists_records(serve, capsys):
    payload = timerecord_payload([
        record("2016-05-01T12:00:00+09:00", "3", "休憩開始"),
        record("2016-05-01T09:00:00+09:00", "1", "出勤"),
    ])
    serve(lambda request: httpx.Response(200, json=payload))

    assert cli.main(["ls"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "09:00:00  in  出勤",
        "12:00:00  break start  休憩開始",
    ]


@pytest.mark.parametrize("command", ["status", "in", "out"])
def test_unauthorized_exits_non_zero(serve, capsys, command):
    serve(lambda request: httpx.Response(401))

    assert cli.main([command]) == cli.EXIT_ADAPTER_ERROR
    captured = capsys.readouterr()
    assert captured.out == ""
    assert "Authentication failed" in captured.err
    assert "cli-token" not in captured.err


def test_missing_token_exits_with_configuration_error(monkeypatch, capsys):
    monkeypatch.delenv("KINGTIME_ACCESS_TOKEN")

    assert cli.main(["status"]) == cli.EXIT_CONFIGURATION_ERROR
    assert "KINGTIME_ACCESS_TOKEN" in capsys.readouterr().err


def test_unknown_command_is_rejected():
    with pytest.raises(SystemExit) as excinfo:
        cli.main(["lunch"])

    assert excinfo.value.code == 2


@pytest.mark.parametrize("name, value", [
    ("KINGTIME_TIME_ZONE", "Mars/Olympus"),
    ("LOG_LEVEL", "loud"),
])
def test_invalid_setting_exits_with_configuration_error(monkeypatch, capsys, name, value):
    monkeypatch.setenv(name, value)

    assert cli.main(["status"]) == cli.EXIT_CONFIGURATION_ERROR
    assert name in capsys.readouterr().err


def test_json_output_for_punch(serve, capsys):
    body = {"date": "2016-05-01", "time": "2016-05-01T09:00:00+09:00", "code": "1", "divisionCode": "1000"}
    serve(lambda request: httpx.Response(200, json=body))

    assert cli.main(["--json", "in"]) == 0
    assert json.loads(capsys.readouterr().out) == {
        "kind": "IN",
        "timestamp": "2016-05-01T09:00:00+09:00",
        "date": "2016-05-01",
        "employee_key": EMPLOYEE_KEY,
        "metadata": {"divisionCode": "1000"},
    }


def test_json_output_for_ls(serve, capsys):
    payload = timerecord_payload([record("2016-05-01T09:00:00+09:00", "1", "出勤")])
    serve(lambda request: httpx.Response(200, json=payload))

    assert cli.main(["ls", "--json"]) == 0
    assert json.loads(capsys.readouterr().out) == [{
        "time": "2016-05-01T09:00:00+09:00",
        "code": "1",
        "name": "出勤",
        "division_code": "1000",
        "division_name": "本社",
    }]


def test_summary_shows_own_totals(serve, capsys):
    other = copy.deepcopy(DAILY_WORKINGS[0]["dailyWorkings"][0])
    other["employeeKey"] = "someone-else"
    payload = copy.deepcopy(DAILY_WORKINGS)
    payload[0]["dailyWorkings"].append(other)
    serve(lambda request: httpx.Response(200, json=payload))

    assert cli.main(["summary"]) == 0
    assert capsys.readouterr().out.splitlines() == [
        "2016-05-01  worked 10:15  overtime 2:15  break 1:00",
    ]


def test_verbose_log_never_contains_token(serve, capsys):
    body = {"date": "2016-05-01", "time": "2016-05-01T09:00:00+09:00", "code": "1"}
    serve(lambda request: httpx.Response(200, json=body))

    assert cli.main(["-v", "in"]) == 0
    err = capsys.readouterr().err
    assert "POST" in err
    assert "cli-token" not in err


def test_verbose_error_log_never_contains_token(serve, capsys):
    serve(lambda request: httpx.Response(401))

    assert cli.main(["-v", "status"]) == cli.EXIT_ADAPTER_ERROR
    err = capsys.readouterr().err
    assert "AUTH_ERROR" in err
    assert "cli-token" not in err
