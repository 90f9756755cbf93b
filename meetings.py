"""
Meeting links for speaking sessions.

An administrator can store a join URL on the session; otherwise a link is
generated for the configured self-hosted provider. With the "manual"
provider and no stored URL there is no link, and the gate stays open
without a redirect until one is added.
"""
import os
import re
from urllib.parse import quote

PROVIDERS = ("manual", "jitsi", "talky", "livekit", "mirotalk_p2p")


def check_provider(name):
    provider = (name or "manual").strip().lower()
    if provider not in PROVIDERS:
        raise ValueError(f"unknown video provider: {name!r} (expected one of {', '.join(PROVIDERS)})")
    return provider


# fails at import, so a bad SPEAKING_VIDEO_PROVIDER stops the app from starting
VIDEO_PROVIDER = check_provider(os.environ.get("SPEAKING_VIDEO_PROVIDER"))
MEETING_BASE = (os.environ.get("SELF_HOSTED_MEETING_BASE") or "").rstrip("/")
JITSI_BASE = (os.environ.get("SELF_HOSTED_JITSI_BASE") or "").rstrip("/")
TALKY_BASE = (os.environ.get("TALKY_BASE") or "https://talky.io").rstrip("/")
MIROTALK_BASE = (os.environ.get("MIROTALK_BASE") or "https://p2p.mirotalk.com").rstrip("/")



def room_for_session(session):
    start_sec = int(session.start_utc_ms or 0) // 1000
    raw = f"speak-s{session.id or 0}-{start_sec}"
    return re.sub(r"[^A-Za-z0-9_-]", "", raw)[:120]

def generated_join_url(session, provider=None):
    provider = check_provider(provider or VIDEO_PROVIDER)
    if provider == "manual":
        return ""
    room = quote(room_for_session(session), safe="")
    if provider == "jitsi":
        query = f"room={room}"
        if JITSI_BASE:
            query += f"&base={quote(JITSI_BASE, safe='')}"
        return f"{MEETING_BASE}/meeting.html?{query}"
    if provider == "talky":
        return f"{TALKY_BASE}/{room}"
    if provider == "livekit":
        return f"{MEETING_BASE}/meeting-livekit.html?room={room}"
    return f"{MIROTALK_BASE}/join?room={room}"

def resolve_join_url(session):
    stored = (session.join_url or "").strip()
    if stored:
        return stored
    return generated_join_url(session)
