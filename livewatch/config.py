from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping


SUPPRESS_LAUNCH_BROWSER_ENV = "LIVEWATCH_SUPPRESS_LAUNCH_BROWSER"
RUNNING_AS_TEST_ENV = "__LIVEWATCH_RUNNING_AS_TEST"
BROWSER_PATH_ENV = "LIVEWATCH_BROWSER_PATH"

# Injected into the child so the app can connect its refresh script.
REFRESH_URL_ENV = "LIVEWATCH_REFRESH_URL"


@dataclass(frozen=True)
class BrowserConfig:
    suppress_launch_browser: bool = False
    running_in_test: bool = False
    browser_path: str | None = None

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> BrowserConfig:
        env = os.environ if environ is None else environ
        suppress = env.get(SUPPRESS_LAUNCH_BROWSER_ENV, "")
        browser_path = env.get(BROWSER_PATH_ENV) or None
        return cls(
            suppress_launch_browser=suppress in ("1", "true"),
            running_in_test=env.get(RUNNING_AS_TEST_ENV) == "true",
            browser_path=browser_path,
        )
