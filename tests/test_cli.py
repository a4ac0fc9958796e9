"""Tests for platform detection and the CLI parser."""
import os
import unittest
from unittest.mock import patch

from proximity.cli import build_parser, main
from proximity.platform import detect_platform
from proximity.schema import PlatformCommands


class TestDetectPlatform(unittest.TestCase):
    @patch.dict(os.environ, {"PROXIMITY_PLATFORM": "windows"}, clear=True)
    def test_override(self):
        self.assertEqual(detect_platform(), "windows")

    @patch("proximity.platform.sys.platform", "darwin")
    @patch.dict(os.environ, {}, clear=True)
    def test_macos(self):
        self.assertEqual(detect_platform(), "macos")

    @patch("proximity.platform.sys.platform", "linux")
    @patch.dict(os.environ, {"XDG_CURRENT_DESKTOP": "ubuntu:GNOME"}, clear=True)
    def test_gnome(self):
        self.assertEqual(detect_platform(), "gnome")

    @patch("proximity.platform.sys.platform", "linux")
    @patch.dict(os.environ, {"XDG_CURRENT_DESKTOP": "KDE"}, clear=True)
    def test_other_desktop_has_no_commands(self):
        platform = detect_platform()
        self.assertEqual(platform, "linux-KDE")
        commands = PlatformCommands(gnome="gsettings set a b")
        self.assertEqual(commands.for_platform(platform), "")

    @patch("proximity.platform.sys.platform", "linux")
    @patch.dict(os.environ, {}, clear=True)
    def test_unknown_linux(self):
        self.assertEqual(detect_platform(), "linux-unknown")


class TestParser(unittest.TestCase):
    def test_chat_options(self):
        args = build_parser().parse_args(["-v", "chat", "--model", "alpha", "--apply-saved"])
        self.assertTrue(args.verbose)
        self.assertEqual(args.model, "alpha")
        self.assertTrue(args.apply_saved)

    def test_no_subcommand_prints_help(self):
        with patch("sys.stdout"):
            self.assertEqual(main([]), 2)


if __name__ == "__main__":
    unittest.main()
