"""Logging module for Wayfinder."""

import json
import threading
from datetime import datetime
from typing import Callable, Optional, TextIO

LogCallback = Callable[[str, Optional[dict]], None]


def format_line(message: str, data: Optional[dict] = None) -> str:
    """`[iso-time] message | {json}`; data that json can't encode is stringified"""
    line = f"[{datetime.now().isoformat()}] {message}"
    if data:
        line += f" | {json.dumps(data, default=str)}"
    return line


class Logger:
    """Structured event log shared by the store, recorder, views and map servers.

    Lines go to stdout (unless echo is off) and to an optional log file, which
    is appended to with a header per session. The optional callback gets the
    raw message and data, e.g. WebMap.send_log to stream them to the browser.
    Safe to call from the map server, location watch and poller threads.
    """

    def __init__(self, log_path: Optional[str] = None, callback: Optional[LogCallback] = None,
                 echo: bool = True):
        self.log_path = log_path
        self.callback = callback
        self.echo = echo
        self._lock = threading.Lock()
        self.file: Optional[TextIO] = None
        if log_path:
            self.file = open(log_path, "a")
            self.file.write(f"\n{'=' * 60}\nWayfinder Log - {datetime.now().isoformat()}\n{'=' * 60}\n\n")
            self.file.flush()

    def log(self, message: str, data: Optional[dict] = None):
        line = format_line(message, data)
        with self._lock:
            if self.echo:
                print(line)
            if self.file:
                self.file.write(line + "\n")
                self.file.flush()
        callback = self.callback
        if callback:
            callback(message, data)

    def close(self):
        with self._lock:
            if self.file:
                self.file.close()
                self.file = None

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, *exc):
        self.close()


NULL_LOGGER = Logger(echo=False)
