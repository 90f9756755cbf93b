#!/usr/bin/env python3
"""
Speaking gate poller.

Polls /api/speaking/<token> on a fixed cadence, keeps a countdown on screen
between polls and hands the meeting link to `on_redirect` exactly once when
the gate opens. The ended state is terminal: both loops are cancelled and
the client has to be restarted.

Usage:
    python gate_client.py --url http://localhost:5000 --token <token>
"""
import argparse
import asyncio
import json
import logging
import sys
import time
import webbrowser
from urllib.parse import quote

import aiohttp

log = logging.getLogger(__name__)

UNINITIALIZED = "uninitialized"
COUNTDOWN = "countdown"
OPEN = "open"
ENDED = "ended"
ERROR = "error"


class GateError(Exception):
    """The gate endpoint answered with an error (unknown token, server error)."""

    def __init__(self, message, status=None):
        super().__init__(message)
        self.status = status


class TransientError(Exception):
    """Network or parse failure; the next poll may succeed."""


def local_ms():
    return int(time.time() * 1000)


def format_hms(total_sec) -> str:
    sec = max(0, int(total_sec or 0))
    return f"{sec // 3600:02d}:{(sec % 3600) // 60:02d}:{sec % 60:02d}"


def _print_render(state, remaining_sec, gate):
    if state == COUNTDOWN:
        print(f"\r⏳ {gate.get('candidateName') or 'candidate'} starts in {format_hms(remaining_sec)}", end="", flush=True)

def _print_message(text, kind="ok"):
    mark = "✅" if kind == "ok" else "⚠️ "
    print(f"\n{mark} {text}")

def _print_redirect(url):
    print(f"\n🔗 {url}")


class GateClient:
    def __init__(self, base_url: str, token: str, fetch=None, on_render=None, on_message=None,
                 on_redirect=None, clock=local_ms, poll_interval: float = 5.0, tick_interval: float = 1.0):
        self.base_url = (base_url or "").rstrip("/")
        self.token = (token or "").strip()
        self.on_render = on_render or _print_render
        self.on_message = on_message or _print_message
        self.on_redirect = on_redirect or _print_redirect
        self.clock = clock
        self.poll_interval = poll_interval
        self.tick_interval = tick_interval

        self._fetch = fetch or self._http_fetch
        self._session = None

        self.state = UNINITIALIZED
        self.server_offset_ms = 0
        self.last_gate = None  # written only by apply()
        self.start_utc_ms = None
        self.remaining_sec = None
        self.redirect_url = ""
        self.redirect_triggered = False

        self._issued = 0
        self._applied = 0
        self._stopped = False
        self._done = None
        self._tasks = set()

    # ----------------------------------------------------------------
    # HTTP
    # ----------------------------------------------------------------
    async def _http_fetch(self):
        if self._session is None:
            self._session = aiohttp.ClientSession()
        url = f"{self.base_url}/api/speaking/{quote(self.token, safe='')}"
        try:
            async with self._session.get(url, headers={"Cache-Control": "no-store"}) as resp:
                status = resp.status
                body = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientError(f"Network error: {e}") from e

        try:
            data = json.loads(body) if body else {}
        except ValueError:
            data = None
        if status >= 400:
            error = data.get("error") if isinstance(data, dict) else None
            raise GateError(error or f"HTTP {status}", status)
        if not isinstance(data, dict):
            raise TransientError("Malformed gate response.")
        return data

    # ----------------------------------------------------------------
    # State
    # ----------------------------------------------------------------
    async def refresh(self):
        """Issue one poll. Returns True if its response was applied."""
        self._issued += 1
        seq = self._issued
        try:
            payload = await self._fetch()
        except (GateError, TransientError) as e:
            if not self._stopped:
                self.on_message(str(e), "bad")
            return False
        return self.apply(seq, payload, self.clock())

    def apply(self, seq, payload, local_now_ms) -> bool:
        if self._stopped or self.state == ENDED:
            return False
        if seq < self._applied:
            log.debug("dropping gate response #%d, already applied #%d", seq, self._applied)
            return False
        try:
            server_now = int(payload["serverNow"])
            start = int(payload.get("startUtcMs") or 0)
        except (KeyError, TypeError, ValueError):
            self.on_message("Malformed gate response.", "bad")
            return False

        self._applied = seq
        self.server_offset_ms = server_now - local_now_ms
        self.last_gate = payload
        status = payload.get("status")

        if status == COUNTDOWN:
            self.state = COUNTDOWN
            self.redirect_url = ""
            self.start_utc_ms = start
            self.remaining_sec = self._seconds_to_start(local_now_ms)
            self.on_render(self.state, self.remaining_sec, payload)
            self.on_message("The meeting link will activate automatically at the scheduled time.", "ok")
        elif status == OPEN:
            self.state = OPEN
            self.remaining_sec = 0
            self.redirect_url = str(payload.get("redirectUrl") or "").strip()
            self.on_render(self.state, 0, payload)
            if not self.redirect_url:
                self.on_message("Meeting is not available yet. Please try again shortly.", "bad")
            elif not self.redirect_triggered:
                self.redirect_triggered = True
                self.on_message("Redirecting to meeting...", "ok")
                self.on_redirect(self.redirect_url)
        elif status == ENDED:
            self.state = ENDED
            self.remaining_sec = 0
            self.redirect_url = ""
            self.on_render(self.state, 0, payload)
            self.on_message("The scheduled time window for this session is closed.", "bad")
            self.stop()
        else:
            self.on_message("Unknown session state.", "bad")
        return True

    def _seconds_to_start(self, local_now_ms):
        left_ms = self.start_utc_ms - (local_now_ms + self.server_offset_ms)
        return max(0, -(-left_ms // 1000))

    def tick(self):
        # cosmetic only; recomputed from the local clock plus the last server offset
        if self.state != COUNTDOWN or self.start_utc_ms is None:
            return
        self.remaining_sec = self._seconds_to_start(self.clock())
        self.on_render(self.state, self.remaining_sec, self.last_gate or {})

    # ----------------------------------------------------------------
    # Loops
    # ----------------------------------------------------------------
    def _spawn(self, coro):
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _poll_loop(self):
        while not self._stopped:
            # each poll runs on its own so a stalled request never delays the next one
            self._spawn(self.refresh())
            await asyncio.sleep(self.poll_interval)

    async def _tick_loop(self):
        while not self._stopped:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    async def run(self):
        """Poll until the gate ends or stop() is called. Returns the final state."""
        if not self.token:
            self.state = ERROR
            self.on_message("Missing token.", "bad")
            return self.state

        self._stopped = False
        self._done = asyncio.Event()
        try:
            self._spawn(self._poll_loop())
            self._spawn(self._tick_loop())
            await self._done.wait()
        finally:
            pending = list(self._tasks)
            self.stop()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
            self._tasks.clear()
            await self.close()
        return self.state

    async def close(self):
        """Release the HTTP session opened by the first poll, if any."""
        if self._session is not None:
            await self._session.close()
            self._session = None

    def stop(self):
        """Cancel both loops and any in-flight polls."""
        self._stopped = True
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()
        if self._done is not None:
            self._done.set()


def main():
    parser = argparse.ArgumentParser(description="Wait for a speaking session to open")
    parser.add_argument("--url", default="http://localhost:5000", help="Base URL of the exam gate")
    parser.add_argument("--token", required=True, help="Session token from the candidate link")
    parser.add_argument("--poll", type=float, default=5.0, help="Seconds between polls")
    parser.add_argument("--no-browser", action="store_true", help="Print the meeting link instead of opening it")
    parser.add_argument("--verbose", "-v", action="store_true")
    args = parser.parse_args()

    logging.basicConfig(level=logging.DEBUG if args.verbose else logging.WARNING)

    client = None

    def on_redirect(url):
        _print_redirect(url)
        if not args.no_browser:
            webbrowser.open(url)
        client.stop()

    client = GateClient(args.url, args.token, on_redirect=on_redirect, poll_interval=args.poll)
    try:
        state = asyncio.run(client.run())
    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(1)
    sys.exit(0 if state in (OPEN, ENDED) else 1)


if __name__ == "__main__":
    main()
