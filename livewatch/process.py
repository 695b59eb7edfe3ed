from __future__ import annotations

import os
import signal
import subprocess
import sys
import threading
from dataclasses import dataclass, field
from typing import Callable, TextIO

from .util import Reporter, _log_exception, dprint


OutputHandler = Callable[["ChildProcess", str], None]


@dataclass
class ProcessSpec:
    executable: str
    arguments: list[str] = field(default_factory=list)
    working_directory: str = field(default_factory=os.getcwd)
    environment_variables: dict[str, str] = field(default_factory=dict)
    on_output: list[OutputHandler] = field(default_factory=list)

    @property
    def command(self) -> str | None:
        return self.arguments[0] if self.arguments else None

    def argv(self) -> list[str]:
        return [self.executable, *self.arguments]


@dataclass
class WatchContext:
    iteration: int
    reporter: Reporter
    process_spec: ProcessSpec
    is_supported_runtime: bool = True


class ChildProcess:
    def __init__(self, spec: ProcessSpec, *, echo: TextIO | None = None) -> None:
        self.spec = spec
        self._echo = echo
        self._lock = threading.Lock()
        self._handlers: list[OutputHandler] = []
        self._cancelled = threading.Event()
        self._proc: subprocess.Popen[str] | None = None
        self._reader: threading.Thread | None = None

    @property
    def pid(self) -> int | None:
        return self._proc.pid if self._proc else None

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode if self._proc else None

    def start(self) -> None:
        if self._proc is not None:
            raise RuntimeError("process already started")
        env = dict(os.environ)
        env.update(self.spec.environment_variables)
        with self._lock:
            self._handlers = list(self.spec.on_output)
            redirect = bool(self._handlers)

        self._proc = subprocess.Popen(
            self.spec.argv(),
            cwd=self.spec.working_directory,
            env=env,
            stdin=subprocess.DEVNULL,
            stdout=subprocess.PIPE if redirect else None,
            text=True,
            encoding="utf-8",
            errors="replace",
            bufsize=1,
            start_new_session=True,
        )
        dprint(f"process: started pid={self._proc.pid} argv={self.spec.argv()!r}")
        if redirect:
            self._reader = threading.Thread(target=self._read_output, name=f"output-{self._proc.pid}", daemon=True)
            self._reader.start()

    def remove_output_handler(self, handler: OutputHandler) -> None:
        with self._lock:
            try:
                self._handlers.remove(handler)
            except ValueError:
                pass

    def cancel_output_read(self) -> None:
        # Output keeps reaching the console; only dispatch to handlers stops.
        self._cancelled.set()

    @property
    def output_cancelled(self) -> bool:
        return self._cancelled.is_set()

    def _write_echo(self, line: str) -> None:
        out = self._echo if self._echo is not None else sys.stdout
        try:
            out.write(line + "\n")
            out.flush()
        except Exception:
            pass

    def _read_output(self) -> None:
        proc = self._proc
        if proc is None or proc.stdout is None:
            return
        try:
            for raw in proc.stdout:
                line = raw.rstrip("\r\n")
                # The output was redirected; keep it visible.
                self._write_echo(line)
                if self._cancelled.is_set():
                    continue
                with self._lock:
                    handlers = list(self._handlers)
                for h in handlers:
                    try:
                        h(self, line)
                    except Exception as e:
                        _log_exception("output handler", e)
        except (OSError, ValueError) as e:
            dprint(f"process: output reader stopped: {e}")

    def poll(self) -> int | None:
        return self._proc.poll() if self._proc else None

    def wait(self, timeout: float | None = None) -> int | None:
        if self._proc is None:
            return None
        rc = self._proc.wait(timeout=timeout)
        if self._reader is not None and self._reader is not threading.current_thread():
            self._reader.join(timeout if timeout is not None else 5.0)
        return rc

    def terminate(self, grace_s: float = 5.0) -> int | None:
        proc = self._proc
        if proc is None:
            return None
        if proc.poll() is None:
            try:
                os.killpg(proc.pid, signal.SIGTERM)
            except Exception:
                try:
                    proc.terminate()
                except ProcessLookupError:
                    pass
            try:
                proc.wait(timeout=grace_s)
            except subprocess.TimeoutExpired:
                try:
                    os.killpg(proc.pid, signal.SIGKILL)
                except Exception:
                    proc.kill()
        return self.wait()
