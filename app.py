import os, secrets, argparse
from flask import Flask, render_template, request, jsonify

from models import db, ExamSession, get_app_config, record_submission
from gate import evaluate, now_ms, OPEN
from meetings import resolve_join_url

# --------------------------------------------------------------------
# Config
# --------------------------------------------------------------------
APP_SECRET = os.environ.get("APP_SECRET") or secrets.token_hex(32)
DB_PATH = os.path.abspath(os.environ.get("EXAMGATE_DB", "examgate.db"))
DB_URI  = os.environ.get("DATABASE_URL") or f"sqlite:///{DB_PATH}"
SHARE_HOST = os.environ.get("EXAMGATE_SHARE_HOST")  # optional override for candidate links
POLL_INTERVAL_SEC = float(os.environ.get("SPEAKING_POLL_INTERVAL_SEC", "5"))

def create_app(db_path=DB_URI):
    app = Flask(__name__)
    app.config["SECRET_KEY"] = APP_SECRET
    app.config["SQLALCHEMY_DATABASE_URI"] = db_path
    app.config["SQLALCHEMY_TRACK_MODIFICATIONS"] = False
    app.config["CLOCK"] = now_ms  # epoch ms; swapped out in tests
    db.init_app(app)
    with app.app_context():
        db.create_all()
    app.logger.info("exam gate ready (db=%s)", db_path)
    return app

app = create_app()

def speaking_url(token, host=None):
    base = (host or SHARE_HOST or "").rstrip("/")
    return f"{base}/speaking?token={token}"

def _server_now():
    return int(app.config["CLOCK"]())

def _no_store(resp):
    resp.headers["Cache-Control"] = "no-store"
    return resp

def _session_or_404(token, description):
    return ExamSession.query.filter_by(token=token.strip()).first_or_404(description=description)

# --------------------------------------------------------------------
# Errors: JSON for the API, default pages elsewhere
# --------------------------------------------------------------------
@app.errorhandler(404)
def not_found(e):
    if request.path.startswith("/api/"):
        app.logger.info("404 on %s: %s", request.path, e.description)
        return jsonify({"ok": False, "error": e.description}), 404
    return e

@app.errorhandler(500)
def server_error(e):
    app.logger.error("unhandled error on %s: %r", request.path, getattr(e, "original_exception", e))
    if request.path.startswith("/api/"):
        return jsonify({"ok": False, "error": "internal_error"}), 500
    return e

# --------------------------------------------------------------------
# Speaking gate
# --------------------------------------------------------------------
@app.route("/api/speaking/<token>")
def speaking_gate(token):
    s = _session_or_404(token, "No speaking slot found for this token")

    now = _server_now()
    result = evaluate(now, s.start_utc_ms, s.duration_seconds)
    out = {
        "ok": True,
        "status": result.status,
        "remainingMs": result.remaining_ms,
        "serverNow": now,
        "startUtcMs": s.start_utc_ms,
        "endUtcMs": s.end_utc_ms,
        "candidateName": s.candidate_name,
    }
    if result.status == OPEN:
        out["redirectUrl"] = resolve_join_url(s)
    return _no_store(jsonify(out))

@app.route("/speaking")
def speaking_page():
    token = (request.args.get("token") or "").strip()
    return render_template(
        "speaking.html",
        token=token,
        error=None if token else "Missing token in URL.",
        poll_ms=int(POLL_INTERVAL_SEC * 1000),
    )

# --------------------------------------------------------------------
# Exam window gate (global open time from the config row)
# --------------------------------------------------------------------
@app.route("/api/session/<token>")
def session_gate(token):
    s = _session_or_404(token, "Invalid or expired token")

    cfg = get_app_config()
    now = _server_now()
    result = evaluate(now, cfg.open_at_utc_ms, cfg.duration_seconds)
    return _no_store(jsonify({
        "ok": True,
        "status": result.status,
        "remainingMs": result.remaining_ms,
        "serverNow": now,
        "openAtUtc": cfg.open_at_utc_ms,
        "endAtUtc": cfg.end_at_utc_ms,
        "candidateName": s.candidate_name,
        "submitted": bool(s.submitted),
    }))

@app.route("/api/session/<token>/submit", methods=["POST"])
def submit_session(token):
    s = _session_or_404(token, "Invalid or expired token")

    cfg = get_app_config()
    result = evaluate(_server_now(), cfg.open_at_utc_ms, cfg.duration_seconds)
    if result.status != OPEN:
        return jsonify({"ok": False, "error": "exam_not_open", "status": result.status}), 409

    data = request.get_json(silent=True) or {}
    first = record_submission(s, data.get("answers") if isinstance(data, dict) else None)
    if first:
        app.logger.info("session %s submitted", s.id)
    return _no_store(jsonify({"ok": True, "status": "submitted", "alreadySubmitted": not first}))

@app.route("/health")
def health():
    return jsonify({"status": "healthy"})

# --------------------------------------------------------------------
# Dev entry
# --------------------------------------------------------------------
def main():
    parser = argparse.ArgumentParser()
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=5000)
    args = parser.parse_args()
    print(f"Serving exam gate on http://{args.host}:{args.port}")
    app.run(host=args.host, port=args.port)

if __name__ == "__main__":
    main()
