#!/usr/bin/env python3
from __future__ import annotations

import argparse
import os
import re
import signal
import sys
import threading
from typing import Any, Protocol, Sequence

from .browser import BrowserRefresher
from .process import ChildProcess, ProcessSpec, WatchContext
from .util import Reporter, _log_exception


# The browser refresh middleware is only available from this runtime version on.
MIN_RUNTIME_VERSION = (3, 1)
DEFAULT_RUNTIME_VERSION = os.environ.get("LIVEWATCH_RUNTIME_VERSION", "3.1")

_VERSION_RE = re.compile(r"(\d+)\.(\d+)")


class WatchFilter(Protocol):
    def process(self, context: WatchContext) -> None: ...


def runtime_supported(version: str | None) -> bool:
    if not version:
        return False
    m = _VERSION_RE.search(version)
    if not m:
        return False
    return (int(m.group(1)), int(m.group(2))) >= MIN_RUNTIME_VERSION


class Watcher:
    def __init__(
        self,
        spec: ProcessSpec,
        *,
        filters: Sequence[WatchFilter],
        reporter: Reporter,
        is_supported_runtime: bool = True,
        poll_s: float = 0.1,
    ) -> None:
        self.spec = spec
        self.filters = list(filters)
        self.reporter = reporter
        self.is_supported_runtime = is_supported_runtime
        self.poll_s = poll_s
        self.iteration = 0
        self._stop = threading.Event()
        self._rebuild = threading.Event()
        self._wake = threading.Event()

    def request_rebuild(self) -> None:
        self._rebuild.set()
        self._wake.set()

    def stop(self) -> None:
        self._stop.set()
        self._wake.set()

    def _run_filters(self) -> None:
        ctx = WatchContext(
            iteration=self.iteration,
            reporter=self.reporter,
            process_spec=self.spec,
            is_supported_runtime=self.is_supported_runtime,
        )
        for f in self.filters:
            try:
                f.process(ctx)
            except Exception as e:
                _log_exception(f"watch filter {type(f).__name__}", e)

    def run(self) -> int:
        while not self._stop.is_set():
            self._rebuild.clear()
            self._run_filters()

            child = ChildProcess(self.spec)
            try:
                child.start()
            except OSError as e:
                self.reporter.error(f"Unable to start {self.spec.executable}: {e}")
                child = None
            else:
                self.reporter.verbose(f"Started '{' '.join(self.spec.argv())}' with process id {child.pid}.")

            exited = child is None
            while not self._stop.is_set() and not self._rebuild.is_set():
                if not exited and child is not None and child.poll() is not None:
                    exited = True
                    self.reporter.output(f"Exited with code {child.returncode}. Waiting for a rebuild request.")
                self._wake.wait(self.poll_s)
                self._wake.clear()

            if child is not None:
                child.terminate()
            if self._stop.is_set():
                break
            self.reporter.output("Rebuild requested. Restarting.")
            self.iteration += 1
        return 0


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    ap = argparse.ArgumentParser(
        prog="livewatch",
        description="Run a web app, launch the browser once it listens and refresh it on every rebuild (SIGHUP).",
    )
    ap.add_argument("--cwd", default=os.getcwd(), help="Working directory of the app (default: current directory)")
    ap.add_argument(
        "--runtime-version",
        default=DEFAULT_RUNTIME_VERSION,
        help="Runtime version targeted by the app, e.g. 3.1 or 6.0 (default: %(default)s)",
    )
    ap.add_argument("-v", "--verbose", action="store_true", help="Report verbose diagnostics")
    ap.add_argument("args", nargs=argparse.REMAINDER, help="Command after -- to run, e.g. -- dotnet run")
    ns = ap.parse_args(argv)
    args = list(ns.args)
    if args and args[0] == "--":
        args = args[1:]
    if not args:
        ap.error("a command to run is required after --")
    ns.args = args
    return ns


def main(argv: list[str] | None = None) -> None:
    ns = _parse_args(argv)
    reporter = Reporter(verbose=ns.verbose)
    spec = ProcessSpec(executable=ns.args[0], arguments=ns.args[1:], working_directory=str(ns.cwd))
    refresher = BrowserRefresher()
    watcher = Watcher(
        spec,
        filters=[refresher],
        reporter=reporter,
        is_supported_runtime=runtime_supported(ns.runtime_version),
    )

    def _sigterm(_signo: int, _frame: Any) -> None:
        watcher.stop()

    def _sighup(_signo: int, _frame: Any) -> None:
        watcher.request_rebuild()

    signal.signal(signal.SIGTERM, _sigterm)
    signal.signal(signal.SIGINT, _sigterm)
    if hasattr(signal, "SIGHUP"):
        signal.signal(signal.SIGHUP, _sighup)

    try:
        code = watcher.run()
    finally:
        refresher.close()
    raise SystemExit(code)


if __name__ == "__main__":
    main()
