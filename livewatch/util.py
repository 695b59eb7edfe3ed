from __future__ import annotations

import datetime
import os
import sys
import threading
import traceback
from typing import TextIO


DEBUG = os.environ.get("LIVEWATCH_DEBUG", "0") == "1"

_WRITE_LOCK = threading.Lock()


def _log_error(msg: str) -> None:
    with _WRITE_LOCK:
        sys.stderr.write(msg.rstrip("\n") + "\n")
        sys.stderr.flush()


def _log_exception(context: str, exc: BaseException) -> None:
    ts = datetime.datetime.now(datetime.timezone.utc).replace(microsecond=0, tzinfo=None).isoformat() + "Z"
    _log_error(f"error: {context}: {type(exc).__name__}: {exc}")
    tb = "".join(traceback.format_exception(type(exc), exc, exc.__traceback__)).rstrip("\n")
    if tb:
        _log_error(f"traceback ({ts}):\n{tb}")


def dprint(msg: str) -> None:
    if not DEBUG:
        return
    try:
        _log_error(msg)
    except Exception:
        pass


class Reporter:
    """User-visible sink shared by the watch loop and the output reader threads."""

    def __init__(
        self,
        *,
        verbose: bool = False,
        stdout: TextIO | None = None,
        stderr: TextIO | None = None,
        prefix: str = "livewatch : ",
    ) -> None:
        self.is_verbose = verbose or DEBUG
        self.prefix = prefix
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()

    def _write(self, stream: TextIO | None, fallback: TextIO, msg: str) -> None:
        out = stream if stream is not None else fallback
        with self._lock:
            out.write(self.prefix + msg.rstrip("\n") + "\n")
            out.flush()

    def verbose(self, msg: str) -> None:
        if not self.is_verbose:
            return
        self._write(self._stdout, sys.stdout, msg)

    def output(self, msg: str) -> None:
        self._write(self._stdout, sys.stdout, msg)

    def warn(self, msg: str) -> None:
        self._write(self._stderr, sys.stderr, f"warn: {msg}")

    def error(self, msg: str) -> None:
        self._write(self._stderr, sys.stderr, f"error: {msg}")
