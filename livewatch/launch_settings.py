from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any


LAUNCH_SETTINGS_RELPATH = Path("Properties") / "launchSettings.json"

# Launching a URL relies on file associations that only these platforms provide.
SUPPORTED_PLATFORMS = ("win32", "darwin")

RUN_COMMAND = "run"
PROJECT_COMMAND_NAME = "Project"

REASON_RUNTIME = "runtime"
REASON_PLATFORM = "platform"
REASON_COMMAND = "command"
REASON_MISSING = "missing"
REASON_INVALID = "invalid"
REASON_NO_PROFILE = "no-profile"
REASON_DISABLED = "disabled"


class LaunchSettingsError(ValueError):
    pass


@dataclass(frozen=True)
class LaunchProfile:
    name: str
    command_name: str | None = None
    launch_browser: bool = False
    launch_url: str | None = None


@dataclass(frozen=True)
class EligibilityDecision:
    eligible: bool
    launch_path: str | None = None
    reason: str = ""
    error: Exception | None = field(default=None, compare=False)


def _get_ci(obj: dict[str, Any], key: str) -> Any:
    # Profile files use camelCase but are matched case-insensitively.
    if key in obj:
        return obj[key]
    low = key.lower()
    for k, v in obj.items():
        if isinstance(k, str) and k.lower() == low:
            return v
    return None


def _opt_str(obj: dict[str, Any], key: str, *, profile: str) -> str | None:
    v = _get_ci(obj, key)
    if v is None or isinstance(v, str):
        return v
    raise LaunchSettingsError(f"profile {profile!r}: {key} must be a string")


def _parse_profile(name: str, raw: Any) -> LaunchProfile:
    if not isinstance(raw, dict):
        raise LaunchSettingsError(f"profile {name!r} is not an object")
    launch_browser = _get_ci(raw, "launchBrowser")
    if launch_browser is None:
        launch_browser = False
    if not isinstance(launch_browser, bool):
        raise LaunchSettingsError(f"profile {name!r}: launchBrowser must be a boolean")
    return LaunchProfile(
        name=name,
        command_name=_opt_str(raw, "commandName", profile=name),
        launch_browser=launch_browser,
        launch_url=_opt_str(raw, "launchUrl", profile=name),
    )


def read_launch_profiles(path: Path) -> dict[str, LaunchProfile]:
    """Parse a launch settings file into its profiles, in document order.

    Raises FileNotFoundError when the file is absent and LaunchSettingsError
    when it is unreadable or not shaped like a launch settings document.
    """
    try:
        text = path.read_text(encoding="utf-8-sig")
    except FileNotFoundError:
        raise
    except (OSError, UnicodeDecodeError) as e:
        raise LaunchSettingsError(f"cannot read {path}: {e}") from e
    try:
        doc = json.loads(text)
    except (ValueError, RecursionError) as e:
        # JSONDecodeError, oversized integers and runaway nesting all land here.
        raise LaunchSettingsError(f"invalid JSON in {path}: {e}") from e
    if not isinstance(doc, dict):
        raise LaunchSettingsError(f"{path}: top-level value must be an object")

    profiles = _get_ci(doc, "profiles")
    if profiles is None:
        return {}
    if not isinstance(profiles, dict):
        raise LaunchSettingsError(f"{path}: profiles must be an object")
    return {name: _parse_profile(name, raw) for name, raw in profiles.items()}


def find_project_profile(profiles: dict[str, LaunchProfile]) -> LaunchProfile | None:
    for p in profiles.values():
        if p.command_name == PROJECT_COMMAND_NAME:
            return p
    return None


def resolve_launch_eligibility(
    *,
    platform: str,
    is_supported_runtime: bool,
    command: str | None,
    working_directory: str | Path,
) -> EligibilityDecision:
    if not is_supported_runtime:
        # The refresh middleware needs a current runtime.
        return EligibilityDecision(False, reason=REASON_RUNTIME)

    if platform not in SUPPORTED_PLATFORMS:
        return EligibilityDecision(False, reason=REASON_PLATFORM)

    if command != RUN_COMMAND:
        return EligibilityDecision(False, reason=REASON_COMMAND)

    path = Path(working_directory) / LAUNCH_SETTINGS_RELPATH
    try:
        profiles = read_launch_profiles(path)
    except FileNotFoundError:
        return EligibilityDecision(False, reason=REASON_MISSING)
    except LaunchSettingsError as e:
        return EligibilityDecision(False, reason=REASON_INVALID, error=e)

    profile = find_project_profile(profiles)
    if profile is None:
        return EligibilityDecision(False, reason=REASON_NO_PROFILE)
    if not profile.launch_browser:
        return EligibilityDecision(False, reason=REASON_DISABLED)
    return EligibilityDecision(True, launch_path=profile.launch_url)
