import argparse, json, sys
from datetime import datetime, timezone

import qrcode

from app import create_app, speaking_url
from models import (exam_window, get_app_config, set_app_config,
                    issue_session, update_session_slot)

def parse_utc_ms(s):
    """ISO-8601 ('2026-02-02T17:00' or with offset) to epoch ms. Naive values are UTC."""
    if s is None or str(s).strip() == "":
        return None
    dt = datetime.fromisoformat(str(s).strip().replace("Z", "+00:00"))
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)

def fmt_utc(ms):
    return datetime.fromtimestamp(ms / 1000, tz=timezone.utc).strftime("%Y-%m-%d %H:%M:%S UTC")

def write_qr(url, path):
    qr = qrcode.QRCode(
        version=None,  # auto
        error_correction=qrcode.constants.ERROR_CORRECT_M,
        box_size=8,
        border=2,
    )
    qr.add_data(url)
    qr.make(fit=True)
    qr.make_image(fill_color="black", back_color="white").save(path)
    return path

def show_config(app):
    with app.app_context():
        cfg = get_app_config()
        open_at, end_at = exam_window()
        print(f"Exam opens: {fmt_utc(open_at)}")
        print(f"Exam ends:  {fmt_utc(end_at)} ({cfg.duration_seconds}s)")
        return open_at, end_at

def set_config(app, opens_at, duration_seconds):
    with app.app_context():
        cfg = set_app_config(parse_utc_ms(opens_at), duration_seconds)
        app.logger.info("exam config updated: open=%s duration=%ss", cfg.open_at_utc_ms, cfg.duration_seconds)
        print(f"Exam opens {fmt_utc(cfg.open_at_utc_ms)} for {cfg.duration_seconds}s")
        return cfg.open_at_utc_ms, cfg.duration_seconds

def seed_sessions(app, json_path, host=None):
    """
    JSON: [{"name":"Jane Doe","start":"2026-02-02T17:30","duration":600,"join_url":"..."}]
    duration is in seconds; join_url is optional.
    """
    with app.app_context():
        with open(json_path, "r") as f:
            items = json.load(f)
        out = []
        for it in items:
            s = issue_session(
                it.get("name"),
                parse_utc_ms(it.get("start")),
                it.get("duration"),
                join_url=it.get("join_url"),
            )
            out.append({"name": s.candidate_name, "token": s.token, "url": speaking_url(s.token, host)})
        print("Issued:", len(out))
        for r in out:
            print(f"{r['name']}: {r['token']} {r['url']}")
        return out

def issue_one(app, name, start, duration, join_url=None, host=None, qr_path=None):
    with app.app_context():
        s = issue_session(name, parse_utc_ms(start), duration, join_url=join_url)
        url = speaking_url(s.token, host)
        print(f"{s.candidate_name}: {s.token}")
        print(f"  slot {fmt_utc(s.start_utc_ms)} -> {fmt_utc(s.end_utc_ms)}")
        print(f"  {url}")
        if qr_path:
            write_qr(url, qr_path)
            print(f"  QR written to {qr_path}")
        return s.token

def update_slot(app, token, start=None, duration=None, join_url=None):
    with app.app_context():
        s = update_session_slot(token, parse_utc_ms(start), duration, join_url=join_url)
        if s is None:
            print(f"No session with token {token}")
            return None
        print(f"{s.candidate_name}: {fmt_utc(s.start_utc_ms)} -> {fmt_utc(s.end_utc_ms)}")
        return s

if __name__ == "__main__":
    parser = argparse.ArgumentParser()
    parser.add_argument("cmd", choices=["show-config", "set-config", "seed-sessions", "issue-session", "update-slot"])
    parser.add_argument("json_path", nargs="?", help="seed-sessions input file")
    parser.add_argument("--name")
    parser.add_argument("--start", help="UTC, e.g. 2026-02-02T17:30")
    parser.add_argument("--duration", type=int, help="seconds")
    parser.add_argument("--join-url")
    parser.add_argument("--token")
    parser.add_argument("--host", help="base URL printed in candidate links")
    parser.add_argument("--qr", help="write the candidate link as a PNG QR code")
    args = parser.parse_args()

    app = create_app()
    try:
        if args.cmd == "show-config":
            show_config(app)
        elif args.cmd == "set-config":
            set_config(app, args.start, args.duration)
        elif args.cmd == "seed-sessions":
            if not args.json_path:
                parser.error("seed-sessions needs a JSON file")
            seed_sessions(app, args.json_path, args.host)
        elif args.cmd == "issue-session":
            issue_one(app, args.name, args.start, args.duration, args.join_url, args.host, args.qr)
        else:
            if not args.token:
                parser.error("update-slot needs --token")
            if update_slot(app, args.token, args.start, args.duration, args.join_url) is None:
                sys.exit(1)
    except ValueError as e:  # InvalidConfiguration or an unparseable date
        print(f"❌ {e}")
        sys.exit(2)
