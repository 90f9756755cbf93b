import json

import pytest

import manage
from models import InvalidConfiguration, find_session, get_app_config


def test_parse_utc_ms():
    assert manage.parse_utc_ms("1970-01-01T00:00:01") == 1000
    assert manage.parse_utc_ms("1970-01-01T01:00:00+01:00") == 0
    assert manage.parse_utc_ms("1970-01-01T00:00:02Z") == 2000
    assert manage.parse_utc_ms("") is None
    assert manage.parse_utc_ms(None) is None
    with pytest.raises(ValueError):
        manage.parse_utc_ms("tomorrow")


def test_set_and_show_config(app, capsys):
    manage.set_config(app, "2026-03-01T09:00", 5400)
    open_at, end_at = manage.show_config(app)
    assert end_at - open_at == 5400 * 1000
    assert "2026-03-01 09:00:00 UTC" in capsys.readouterr().out


def test_set_config_rejects_zero_duration(app):
    with pytest.raises(InvalidConfiguration):
        manage.set_config(app, "2026-03-01T09:00", 0)
    assert get_app_config().duration_seconds == 3600


def test_issue_one_prints_candidate_link(app, capsys):
    token = manage.issue_one(app, "Ana", "2026-03-01T09:30", 600, host="https://exam.example/")
    out = capsys.readouterr().out
    assert f"https://exam.example/speaking?token={token}" in out
    s = find_session(token)
    assert s.candidate_name == "Ana"
    assert s.duration_seconds == 600


def test_issue_one_writes_qr(app, tmp_path):
    path = tmp_path / "ana.png"
    manage.issue_one(app, "Ana", "2026-03-01T09:30", 600, qr_path=str(path))
    assert path.read_bytes()[:8] == b"\x89PNG\r\n\x1a\n"


def test_seed_sessions(app, tmp_path):
    src = tmp_path / "slots.json"
    src.write_text(json.dumps([
        {"name": "Ana", "start": "2026-03-01T09:30", "duration": 600},
        {"name": "Ben", "start": "2026-03-01T09:40", "duration": 600, "join_url": "https://meet.example/ben"},
    ]))
    out = manage.seed_sessions(app, str(src))
    assert [r["name"] for r in out] == ["Ana", "Ben"]
    assert find_session(out[1]["token"]).join_url == "https://meet.example/ben"


def test_update_slot(app, capsys):
    token = manage.issue_one(app, "Ana", "2026-03-01T09:30", 600)
    s = manage.update_slot(app, token, start="2026-03-01T10:00")
    assert s is not None
    assert find_session(token).start_utc_ms == manage.parse_utc_ms("2026-03-01T10:00")
    assert manage.update_slot(app, "missing") is None
