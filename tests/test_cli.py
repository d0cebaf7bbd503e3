#
# Copyright 2025 Firmirror contributors
#
# SPDX-License-Identifier: LGPL-2.1-or-later
#

import io
import os
import tempfile
import unittest
from unittest import mock

from firmirror import cli
from firmirror.common import EXIT_CODES
from firmirror.metadata import METADATA_KEY
from firmirror.syncer import VendorReport

from tests.helpers import (
    MockFirmwareEntry,
    MockVendor,
    failing_tool,
    fake_tools,
    make_component,
)


class TestMain(unittest.TestCase):
    def setUp(self):
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.output_dir = os.path.join(tmp.name, "repo")
        self.cache_dir = os.path.join(tmp.name, "cache")
        self.vendor = MockVendor(
            [MockFirmwareEntry("a.bin", make_component("com.example.a"))]
        )
        patches = {
            "check_tools": mock.patch("firmirror.cli.check_tools", return_value=[]),
            "vendors": mock.patch(
                "firmirror.cli.create_vendors", return_value=[("mock", self.vendor)]
            ),
            "signals": mock.patch("firmirror.cli._install_signal_handlers"),
            "run": mock.patch("firmirror.common.subprocess.run", side_effect=fake_tools),
            "stdout": mock.patch("sys.stdout", new_callable=io.StringIO),
        }
        self.mocks = {}
        for name, patcher in patches.items():
            self.mocks[name] = patcher.start()
            self.addCleanup(patcher.stop)

    def main(self, *argv):
        return cli.main(
            [
                "refresh",
                "--output-dir", self.output_dir,
                "--cache-dir", self.cache_dir,
                "--dell-enable",
                *argv,
            ]
        )

    def test_refresh(self):
        self.assertEqual(self.main(), EXIT_CODES["SUCCESS"])
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, "a.bin.cab")))
        self.assertTrue(os.path.exists(os.path.join(self.output_dir, METADATA_KEY)))
        self.assertIn("processed=1", self.mocks["stdout"].getvalue())
        self.mocks["signals"].assert_called_once()

    def test_entry_failure_still_succeeds(self):
        self.vendor.fail_retrieve = {"a.bin"}
        self.assertEqual(self.main(), EXIT_CODES["SUCCESS"])
        self.assertIn("failed=1", self.mocks["stdout"].getvalue())

    def test_catalog_failure_still_succeeds(self):
        self.vendor.fetch_error = OSError("HTTP 500")
        self.assertEqual(self.main(), EXIT_CODES["SUCCESS"])
        self.assertIn("HTTP 500", self.mocks["stdout"].getvalue())

    def test_missing_tools(self):
        self.mocks["check_tools"].return_value = ["jcat-tool"]
        with self.assertLogs("firmirror", level="ERROR") as cm:
            self.assertEqual(self.main(), EXIT_CODES["ERROR"])
        self.assertIn("jcat-tool", cm.output[0])
        self.mocks["vendors"].assert_not_called()

    def test_invalid_configuration(self):
        code = cli.main(["refresh", "--dell-enable"])
        self.assertEqual(code, EXIT_CODES["ERROR"])
        self.mocks["check_tools"].assert_not_called()

    def test_corrupt_metadata(self):
        os.makedirs(self.output_dir)
        with open(os.path.join(self.output_dir, METADATA_KEY), "wb") as f:
            f.write(b"garbage")
        with mock.patch.object(
            self.vendor, "fetch_catalog", wraps=self.vendor.fetch_catalog
        ) as fetch:
            self.assertEqual(self.main(), EXIT_CODES["ERROR"])
        fetch.assert_not_called()
        with open(os.path.join(self.output_dir, METADATA_KEY), "rb") as f:
            self.assertEqual(f.read(), b"garbage")

    def test_publish_failure(self):
        self.mocks["run"].side_effect = failing_tool("jcat-tool")
        self.assertEqual(self.main(), EXIT_CODES["ERROR"])
        self.assertFalse(os.path.exists(os.path.join(self.output_dir, METADATA_KEY)))


class TestSummary(unittest.TestCase):
    @mock.patch("sys.stdout", new_callable=io.StringIO)
    def test_print_summary(self, stdout):
        cli.print_summary(
            [
                VendorReport("dell", processed=2, skipped=1, total=3),
                VendorReport("hpe-gen10", error="catalog unreachable"),
                VendorReport("hpe-gen11", processed=1, total=4, cancelled=True),
            ]
        )
        out = stdout.getvalue()
        self.assertIn("dell: processed=2 skipped=1 failed=0 total=3", out)
        self.assertIn("hpe-gen10: catalog unreachable", out)
        self.assertIn("(cancelled)", out)


class TestSignals(unittest.TestCase):
    @mock.patch("firmirror.cli.signal.signal")
    def test_handler_sets_cancel(self, signal_signal):
        cancel = mock.Mock()
        cli._install_signal_handlers(cancel)
        self.assertEqual(signal_signal.call_count, 2)
        handler = signal_signal.call_args[0][1]
        handler(15, None)
        cancel.set.assert_called_once()


if __name__ == "__main__":
    unittest.main()
