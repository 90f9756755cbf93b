import json
import secrets
from datetime import datetime, timezone
from flask_sqlalchemy import SQLAlchemy
from sqlalchemy.types import TypeDecorator, TEXT

from gate import window_end


db = SQLAlchemy()

# Fixed exam settings used when the config row does not exist yet.
DEFAULT_OPEN_AT_UTC_MS = int(datetime(2026, 2, 2, 17, 0, tzinfo=timezone.utc).timestamp() * 1000)
DEFAULT_DURATION_SECONDS = 3600


class JSONText(TypeDecorator):
    impl = TEXT
    cache_ok = True
    def process_bind_param(self, value, dialect):
        if value is None: return None
        return json.dumps(value, ensure_ascii=False)
    def process_result_value(self, value, dialect):
        if value is None: return None
        return json.loads(value)


class InvalidConfiguration(ValueError):
    """Rejected write to the exam config or a session slot."""


def _check_window(start_utc_ms, duration_seconds, what="start time"):
    if start_utc_ms is None:
        raise InvalidConfiguration(f"{what} is required")
    try:
        duration = int(duration_seconds)
    except (TypeError, ValueError):
        raise InvalidConfiguration("duration must be a whole number of seconds")
    if duration <= 0:
        raise InvalidConfiguration("duration must be positive")
    return int(start_utc_ms), duration


class AppConfig(db.Model):
    __tablename__ = "app_config"
    id = db.Column(db.Integer, primary_key=True)
    open_at_utc_ms = db.Column(db.BigInteger, nullable=False)
    duration_seconds = db.Column(db.Integer, nullable=False)
    updated_at = db.Column(db.DateTime, default=datetime.now, onupdate=datetime.now, nullable=False)

    @property
    def end_at_utc_ms(self):
        return window_end(self.open_at_utc_ms, self.duration_seconds)


class ExamSession(db.Model):
    __tablename__ = "exam_sessions"
    id = db.Column(db.Integer, primary_key=True)
    token = db.Column(db.String(64), unique=True, index=True, nullable=False)
    candidate_name = db.Column(db.String(120), nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.now, nullable=False)
    # speaking slot, independent of the exam open time
    start_utc_ms = db.Column(db.BigInteger, nullable=False)
    duration_seconds = db.Column(db.Integer, nullable=False)
    join_url = db.Column(db.Text, nullable=True)  # set by an administrator, wins over generated links
    submitted = db.Column(db.Boolean, default=False, nullable=False)
    submitted_at = db.Column(db.DateTime, nullable=True)
    answers = db.Column(JSONText, nullable=True)

    @property
    def end_utc_ms(self):
        return window_end(self.start_utc_ms, self.duration_seconds)


# --------------------------------------------------------------------
# Config store
# --------------------------------------------------------------------
def get_app_config():
    cfg = db.session.get(AppConfig, 1)
    if cfg is None:
        cfg = AppConfig(id=1, open_at_utc_ms=DEFAULT_OPEN_AT_UTC_MS,
                        duration_seconds=DEFAULT_DURATION_SECONDS)
        db.session.add(cfg)
        db.session.commit()
    return cfg

def set_app_config(open_at_utc_ms, duration_seconds):
    open_at, duration = _check_window(open_at_utc_ms, duration_seconds, what="open time")
    cfg = get_app_config()
    cfg.open_at_utc_ms = open_at
    cfg.duration_seconds = duration
    db.session.commit()
    return cfg

def exam_window():
    cfg = get_app_config()
    return cfg.open_at_utc_ms, cfg.end_at_utc_ms


# --------------------------------------------------------------------
# Session registry
# --------------------------------------------------------------------
def gen_token():
    token = secrets.token_urlsafe(18)
    while ExamSession.query.filter_by(token=token).first() is not None:
        token = secrets.token_urlsafe(18)
    return token

def find_session(token):
    token = (token or "").strip()
    if not token:
        return None
    return ExamSession.query.filter_by(token=token).first()

def issue_session(candidate_name, start_utc_ms, duration_seconds, join_url=None):
    name = (candidate_name or "").strip()
    if not name:
        raise InvalidConfiguration("candidate name is required")
    start, duration = _check_window(start_utc_ms, duration_seconds)
    s = ExamSession(
        token=gen_token(),
        candidate_name=name,
        start_utc_ms=start,
        duration_seconds=duration,
        join_url=(join_url or "").strip() or None,
    )
    db.session.add(s)
    db.session.commit()
    return s

def update_session_slot(token, start_utc_ms=None, duration_seconds=None, join_url=None):
    """Administrative update of a session's speaking slot. Returns None for unknown tokens."""
    s = find_session(token)
    if s is None:
        return None
    start = s.start_utc_ms if start_utc_ms is None else start_utc_ms
    duration = s.duration_seconds if duration_seconds is None else duration_seconds
    s.start_utc_ms, s.duration_seconds = _check_window(start, duration)
    if join_url is not None:
        s.join_url = join_url.strip() or None
    db.session.commit()
    return s

def record_submission(s, answers=None):
    """Mark the session submitted. The first submission wins; returns False on a repeat."""
    if s.submitted:
        return False
    s.submitted = True
    s.submitted_at = datetime.now()
    s.answers = answers if isinstance(answers, dict) else {}
    db.session.commit()
    return True
