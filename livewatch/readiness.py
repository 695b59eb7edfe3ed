from __future__ import annotations

import enum
import re
from dataclasses import dataclass


_NOW_LISTENING_RE = re.compile(r"^\s*Now listening on: (?P<url>.*)$")
_APPLICATION_STARTED_RE = re.compile(r"^\s*Application started\. Press Ctrl\+C to shut down\.$")

# Both patterns match in linear time; the cap bounds the work per line.
MAX_LINE_CHARS = 16 * 1024


class LineKind(enum.Enum):
    LISTENING = "listening"
    STARTED = "started"
    UNREMARKABLE = "unremarkable"


@dataclass(frozen=True)
class Readiness:
    kind: LineKind
    url: str | None = None


UNREMARKABLE = Readiness(LineKind.UNREMARKABLE)
STARTED = Readiness(LineKind.STARTED)


def classify_line(line: str | None) -> Readiness:
    if not line:
        return UNREMARKABLE
    text = line.rstrip("\r\n")
    if not text or len(text) > MAX_LINE_CHARS:
        return UNREMARKABLE

    if _APPLICATION_STARTED_RE.match(text):
        return STARTED

    m = _NOW_LISTENING_RE.match(text)
    if not m:
        return UNREMARKABLE
    url = m.group("url").strip()
    # A bare "Now listening on:" carries no address to open, so it is not a readiness signal.
    if not url:
        return UNREMARKABLE
    return Readiness(LineKind.LISTENING, url=url)
