import json
import unittest
from pathlib import Path
from tempfile import TemporaryDirectory

from livewatch.launch_settings import (
    REASON_COMMAND,
    REASON_DISABLED,
    REASON_INVALID,
    REASON_MISSING,
    REASON_NO_PROFILE,
    REASON_PLATFORM,
    REASON_RUNTIME,
    EligibilityDecision,
    LaunchSettingsError,
    read_launch_profiles,
    resolve_launch_eligibility,
)


def _write_settings(root: Path, doc: object) -> Path:
    p = root / "Properties" / "launchSettings.json"
    p.parent.mkdir(parents=True, exist_ok=True)
    p.write_text(doc if isinstance(doc, str) else json.dumps(doc), encoding="utf-8")
    return p


def _project(launch_browser: bool = True, launch_url: str | None = "swagger") -> dict:
    prof: dict = {"commandName": "Project", "launchBrowser": launch_browser}
    if launch_url is not None:
        prof["launchUrl"] = launch_url
    return {
        "profiles": {
            "IIS Express": {"commandName": "IISExpress", "launchBrowser": True, "launchUrl": "iis"},
            "app": prof,
        }
    }


def _resolve(root: Path, **kw: object) -> EligibilityDecision:
    args: dict = {"platform": "darwin", "is_supported_runtime": True, "command": "run", "working_directory": root}
    args.update(kw)
    return resolve_launch_eligibility(**args)


class TestResolveLaunchEligibility(unittest.TestCase):
    def test_eligible_with_launch_url(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project())
            d = _resolve(root)
            self.assertTrue(d.eligible)
            self.assertEqual(d.launch_path, "swagger")

    def test_windows_is_supported(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project())
            self.assertTrue(_resolve(root, platform="win32").eligible)

    def test_empty_launch_url(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project(launch_url=None))
            d = _resolve(root)
            self.assertTrue(d.eligible)
            self.assertIsNone(d.launch_path)

    def test_missing_file(self) -> None:
        with TemporaryDirectory() as td:
            d = _resolve(Path(td))
            self.assertFalse(d.eligible)
            self.assertEqual(d.reason, REASON_MISSING)
            self.assertIsNone(d.error)

    def test_launch_browser_false(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project(launch_browser=False))
            d = _resolve(root)
            self.assertFalse(d.eligible)
            self.assertEqual(d.reason, REASON_DISABLED)

    def test_no_project_profile(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, {"profiles": {"iis": {"commandName": "IISExpress", "launchBrowser": True}}})
            self.assertEqual(_resolve(root).reason, REASON_NO_PROFILE)
            _write_settings(root, {"iisSettings": {}})
            self.assertEqual(_resolve(root).reason, REASON_NO_PROFILE)

    def test_invalid_documents_carry_the_error(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            for doc in (
                "{ not json",
                "[]",
                {"profiles": []},
                {"profiles": {"app": None}},
                {"profiles": {"app": {"commandName": "Project", "launchBrowser": "true"}}},
                '{"profiles": {"app": {"commandName": "Project", "port": ' + "9" * 5000 + "}}}",
                "[" * 100000,
            ):
                _write_settings(root, doc)
                d = _resolve(root)
                self.assertFalse(d.eligible, doc)
                self.assertEqual(d.reason, REASON_INVALID, doc)
                self.assertIsInstance(d.error, LaunchSettingsError)

    def test_checks_run_before_reading_the_file(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project())
            self.assertEqual(_resolve(root, is_supported_runtime=False).reason, REASON_RUNTIME)
            self.assertEqual(_resolve(root, platform="linux").reason, REASON_PLATFORM)
            self.assertEqual(_resolve(root, command="test").reason, REASON_COMMAND)
            self.assertEqual(_resolve(root, command=None).reason, REASON_COMMAND)
            self.assertEqual(_resolve(root, command="Run").reason, REASON_COMMAND)

    def test_idempotent(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(root, _project())
            self.assertEqual(_resolve(root), _resolve(root))


class TestReadLaunchProfiles(unittest.TestCase):
    def test_property_names_are_case_insensitive(self) -> None:
        with TemporaryDirectory() as td:
            p = _write_settings(
                Path(td),
                {"Profiles": {"web": {"CommandName": "Project", "LAUNCHBROWSER": True, "launchurl": "api"}}},
            )
            profiles = read_launch_profiles(p)
            self.assertEqual(list(profiles), ["web"])
            self.assertEqual(profiles["web"].command_name, "Project")
            self.assertTrue(profiles["web"].launch_browser)
            self.assertEqual(profiles["web"].launch_url, "api")

    def test_missing_file_raises_file_not_found(self) -> None:
        with TemporaryDirectory() as td:
            with self.assertRaises(FileNotFoundError):
                read_launch_profiles(Path(td) / "nope.json")

    def test_first_project_profile_wins(self) -> None:
        with TemporaryDirectory() as td:
            root = Path(td)
            _write_settings(
                root,
                {
                    "profiles": {
                        "a": {"commandName": "Project", "launchBrowser": True, "launchUrl": "first"},
                        "b": {"commandName": "Project", "launchBrowser": False},
                    }
                },
            )
            self.assertEqual(_resolve(root).launch_path, "first")


if __name__ == "__main__":
    unittest.main()
