import unittest
from pathlib import Path

from toolbundle import settings


class TestSettingsParsing(unittest.TestCase):
    def test_parse_bool_setting_accepts_common_spellings(self) -> None:
        self.assertTrue(settings.parse_bool_setting("1", default=False))
        self.assertTrue(settings.parse_bool_setting(" Yes ", default=False))
        self.assertFalse(settings.parse_bool_setting("off", default=True))
        self.assertTrue(settings.parse_bool_setting("maybe", default=True))
        self.assertFalse(settings.parse_bool_setting(None, default=False))

    def test_parse_float_setting_clamps_and_defaults(self) -> None:
        kwargs = {"default": 5.0, "minimum": 0.0, "maximum": 60.0}
        self.assertEqual(settings.parse_float_setting("2.5", **kwargs), 2.5)
        self.assertEqual(settings.parse_float_setting("120", **kwargs), 60.0)
        self.assertEqual(settings.parse_float_setting("-3", **kwargs), 0.0)
        self.assertEqual(settings.parse_float_setting("abc", **kwargs), 5.0)
        self.assertEqual(settings.parse_float_setting("nan", **kwargs), 5.0)
        self.assertEqual(settings.parse_float_setting(None, **kwargs), 5.0)

    def test_parse_path_setting_ignores_blank_values(self) -> None:
        self.assertIsNone(settings.parse_path_setting("   "))
        self.assertEqual(settings.parse_path_setting("/opt/tools"), Path("/opt/tools"))


class TestLoadSettings(unittest.TestCase):
    def test_defaults_when_environment_is_empty(self) -> None:
        loaded = settings.load_settings({})
        self.assertEqual(loaded, settings.Settings())
        self.assertIsNone(loaded.temp_root)
        self.assertFalse(loaded.process_group)

    def test_reads_prefixed_variables(self) -> None:
        loaded = settings.load_settings(
            {
                "TOOLBUNDLE_TEMP_ROOT": "/var/tmp/tb",
                "TOOLBUNDLE_BUNDLE_ROOT": "/opt/app/tools",
                "TOOLBUNDLE_PROCESS_GROUP": "true",
                "TOOLBUNDLE_KILL_GRACE_S": "1.5",
                "TOOLBUNDLE_POLL_INTERVAL_S": "0",
            }
        )
        self.assertEqual(loaded.temp_root, Path("/var/tmp/tb"))
        self.assertEqual(loaded.bundle_root, Path("/opt/app/tools"))
        self.assertTrue(loaded.process_group)
        self.assertEqual(loaded.kill_grace_s, 1.5)
        self.assertEqual(loaded.poll_interval_s, 0.01)


if __name__ == "__main__":
    unittest.main()
