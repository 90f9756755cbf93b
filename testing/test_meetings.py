import pytest

import meetings
from models import issue_session


@pytest.fixture
def slot(app):
    return issue_session("Ana", 1_700_000_000_000, 600)


def test_stored_join_url_wins(app, monkeypatch):
    monkeypatch.setattr(meetings, "VIDEO_PROVIDER", "talky")
    s = issue_session("Ana", 1000, 60, join_url="https://zoom.example/j/1")
    assert meetings.resolve_join_url(s) == "https://zoom.example/j/1"


def test_manual_provider_has_no_link(slot, monkeypatch):
    monkeypatch.setattr(meetings, "VIDEO_PROVIDER", "manual")
    assert meetings.resolve_join_url(slot) == ""


def test_room_name_is_deterministic(slot):
    assert meetings.room_for_session(slot) == f"speak-s{slot.id}-1700000000"
    assert meetings.room_for_session(slot) == meetings.room_for_session(slot)


def test_jitsi_link(slot, monkeypatch):
    monkeypatch.setattr(meetings, "MEETING_BASE", "https://exam.example")
    monkeypatch.setattr(meetings, "JITSI_BASE", "https://meet.jit.si")
    url = meetings.generated_join_url(slot, "jitsi")
    room = meetings.room_for_session(slot)
    assert url == f"https://exam.example/meeting.html?room={room}&base=https%3A%2F%2Fmeet.jit.si"


def test_talky_livekit_mirotalk_links(slot, monkeypatch):
    monkeypatch.setattr(meetings, "MEETING_BASE", "https://exam.example")
    monkeypatch.setattr(meetings, "TALKY_BASE", "https://talky.io")
    monkeypatch.setattr(meetings, "MIROTALK_BASE", "https://p2p.mirotalk.com")
    room = meetings.room_for_session(slot)
    assert meetings.generated_join_url(slot, "talky") == f"https://talky.io/{room}"
    assert meetings.generated_join_url(slot, "livekit") == f"https://exam.example/meeting-livekit.html?room={room}"
    assert meetings.generated_join_url(slot, "mirotalk_p2p") == f"https://p2p.mirotalk.com/join?room={room}"


def test_unknown_provider(slot):
    with pytest.raises(ValueError):
        meetings.generated_join_url(slot, "skype")


@pytest.mark.parametrize("name, expected", [(None, "manual"), ("", "manual"), (" Jitsi ", "jitsi"), ("talky", "talky")])
def test_check_provider_normalizes(name, expected):
    assert meetings.check_provider(name) == expected


def test_bad_provider_env_fails_at_import(monkeypatch):
    import importlib
    monkeypatch.setenv("SPEAKING_VIDEO_PROVIDER", "skype")
    with pytest.raises(ValueError, match="skype"):
        importlib.reload(meetings)
    monkeypatch.undo()
    importlib.reload(meetings)
    assert meetings.VIDEO_PROVIDER in meetings.PROVIDERS
