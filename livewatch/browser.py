from __future__ import annotations

import enum
import subprocess
import sys
import threading
import webbrowser
from typing import Callable

from .config import REFRESH_URL_ENV, BrowserConfig
from .launch_settings import resolve_launch_eligibility
from .process import ChildProcess, ProcessSpec, WatchContext
from .readiness import LineKind, classify_line
from .refresh_server import RELOAD_MESSAGE, WAIT_MESSAGE, RefreshServer
from .util import Reporter, dprint


class BrowserState(enum.Enum):
    IDLE = "idle"
    ARMED = "armed"
    PENDING = "pending"
    LAUNCHED = "launched"
    INERT = "inert"


_ACTIVE = (BrowserState.ARMED, BrowserState.PENDING, BrowserState.LAUNCHED)


def compose_browser_url(base_url: str, launch_path: str | None) -> str:
    return base_url.rstrip("/") + "/" + (launch_path or "").lstrip("/")


class BrowserRefresher:
    """Launches the browser once the app listens and keeps it refreshed across rebuilds.

    `process` is called by the watch loop once per cycle. Output handling runs on
    the child's reader thread; state changes go through `_lock`.
    """

    def __init__(
        self,
        config: BrowserConfig | None = None,
        *,
        platform: str | None = None,
        server_factory: Callable[[Reporter], RefreshServer] = RefreshServer,
        opener: Callable[[str], bool] | None = None,
    ) -> None:
        self.config = config if config is not None else BrowserConfig.from_env()
        self.platform = platform or sys.platform
        self._server_factory = server_factory
        self._opener = opener or webbrowser.open
        self._lock = threading.Lock()
        # Held for the whole launch so close() cannot finish while a browser is starting.
        self._launch_lock = threading.Lock()
        self._state = BrowserState.IDLE
        self._closed = False
        self._launch_path: str | None = None
        self._server: RefreshServer | None = None
        self._reporter: Reporter | None = None
        self._spec: ProcessSpec | None = None
        self._process: ChildProcess | None = None
        self._browser_process: subprocess.Popen[bytes] | None = None

    @property
    def state(self) -> BrowserState:
        with self._lock:
            return self._state

    def process(self, context: WatchContext) -> None:
        if self.config.suppress_launch_browser:
            return

        if context.iteration == 0:
            with self._lock:
                first = self._state is BrowserState.IDLE and not self._closed
            if first:
                self._activate(context)

        if context.iteration <= 0:
            return
        with self._lock:
            if self._closed or self._state not in _ACTIVE:
                return
            if self._state is BrowserState.ARMED:
                self._state = BrowserState.PENDING
            server = self._server
        # A rebuild is underway; the browser waits for the next reload.
        if server is not None:
            server.send(WAIT_MESSAGE)

    def _activate(self, context: WatchContext) -> None:
        reporter = context.reporter
        spec = context.process_spec
        self._reporter = reporter

        try:
            decision = resolve_launch_eligibility(
                platform=self.platform,
                is_supported_runtime=context.is_supported_runtime,
                command=spec.command,
                working_directory=spec.working_directory,
            )
        except Exception as e:
            reporter.error(f"Unable to resolve browser launch settings: {e}")
            with self._lock:
                self._state = BrowserState.INERT
            return
        if not decision.eligible:
            if decision.error is not None:
                reporter.verbose(f"Ignoring launch settings: {decision.error}")
            else:
                reporter.verbose(f"Browser launch not applicable ({decision.reason}).")
            with self._lock:
                self._state = BrowserState.INERT
            return

        server = self._server_factory(reporter)
        try:
            url = server.start()
        except Exception as e:
            reporter.error(f"Unable to start the browser refresh server: {e}")
            server.close()
            with self._lock:
                self._state = BrowserState.INERT
            return

        reporter.verbose(f"Refresh server running at {url}.")
        spec.environment_variables[REFRESH_URL_ENV] = url
        spec.on_output.append(self._on_output)

        with self._lock:
            self._server = server
            self._spec = spec
            self._launch_path = decision.launch_path
            self._state = BrowserState.ARMED

    def _on_output(self, process: ChildProcess, line: str) -> None:
        with self._lock:
            if self._closed:
                return
            self._process = process

        readiness = classify_line(line)
        if readiness.kind is LineKind.STARTED:
            # Nothing useful follows the startup banner.
            process.remove_output_handler(self._on_output)
            process.cancel_output_read()
            return
        if readiness.kind is not LineKind.LISTENING or readiness.url is None:
            return

        with self._lock:
            if self._closed:
                return
            state = self._state
            if state in (BrowserState.ARMED, BrowserState.PENDING):
                self._state = BrowserState.LAUNCHED
            server = self._server
            reporter = self._reporter

        if state in (BrowserState.ARMED, BrowserState.PENDING):
            with self._launch_lock:
                with self._lock:
                    if self._closed:
                        return
                try:
                    self._launch_browser(readiness.url)
                except Exception as e:
                    if reporter is not None:
                        reporter.output(f"Unable to launch browser: {e}")
                    with self._lock:
                        self._state = BrowserState.INERT
            return

        if state is BrowserState.LAUNCHED and server is not None:
            if reporter is not None:
                reporter.verbose("Reloading browser.")
            server.send(RELOAD_MESSAGE)

    def _launch_browser(self, base_url: str) -> None:
        target = compose_browser_url(base_url, self._launch_path)
        browser_path = self.config.browser_path

        if self.config.running_in_test:
            shown = f"{browser_path} {target}" if browser_path else target
            if self._reporter is not None:
                self._reporter.output(f"Launching browser: {shown}")
            return

        if browser_path:
            proc = subprocess.Popen(
                [browser_path, target],
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
            self._browser_process = proc
            # Prevent zombies when the browser exits.
            threading.Thread(target=proc.wait, daemon=True).start()
            dprint(f"browser: started {browser_path} pid={proc.pid}")
            return

        if not self._opener(target):
            raise RuntimeError(f"no browser available to open {target}")

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
            server = self._server
            spec = self._spec
            process = self._process
            self._server = None

        # Wait out an in-flight launch; later launches see _closed and skip.
        with self._launch_lock:
            self._browser_process = None

        if spec is not None:
            try:
                spec.on_output.remove(self._on_output)
            except ValueError:
                pass
        if process is not None:
            process.remove_output_handler(self._on_output)
        if server is not None:
            server.close()

    def __enter__(self) -> BrowserRefresher:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()
