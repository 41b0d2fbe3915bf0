#!/usr/bin/env python3
"""
Tests for the ``upload`` command line: argument handling, configuration
lookup and exit codes.
"""

import contextlib
import io
import json
import os
import tempfile
import unittest
from pathlib import Path

from stream_upload.cli import main

from .support import running_server, server_url, unused_port


class TestUploadCli(unittest.TestCase):

    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        self._cwd = os.getcwd()
        os.chdir(self.tmp)
        self.src = self.tmp / "data.bin"
        self.src.write_bytes(b"hello world" * 100)

    def tearDown(self):
        os.chdir(self._cwd)
        self._tmp.cleanup()

    def _run(self, *argv):
        out, err = io.StringIO(), io.StringIO()
        with contextlib.redirect_stdout(out), contextlib.redirect_stderr(err):
            code = main(list(argv))
        return code, out.getvalue(), err.getvalue()

    def _write_config(self, payload):
        (self.tmp / "config.json").write_text(json.dumps(payload), encoding="utf-8")

    def test_no_arguments_is_usage_error(self):
        code, _, err = self._run()
        self.assertEqual(code, 2)
        self.assertIn("usage:", err)

    def test_extra_positional_is_usage_error(self):
        code, _, err = self._run("data.bin", "other.bin")
        self.assertEqual(code, 2)
        self.assertIn("usage:", err)

    def test_unknown_flag_is_usage_error(self):
        code, _, err = self._run("data.bin", "--verbose")
        self.assertEqual(code, 2)
        self.assertIn("--verbose", err)

    def test_abbreviated_flag_is_usage_error(self):
        code, _, err = self._run("data.bin", "--ur", "http://127.0.0.1:1/upload")
        self.assertEqual(code, 2)
        self.assertIn("--ur", err)

    def test_url_without_value_is_usage_error(self):
        code, _, _ = self._run("data.bin", "--url")
        self.assertEqual(code, 2)

    def test_missing_config_is_configuration_error(self):
        code, _, err = self._run("data.bin")
        self.assertEqual(code, 3)
        self.assertIn("config.json", err)
        self.assertIn("--url", err)

    def test_malformed_config_is_configuration_error(self):
        self._write_config({"destination": ""})
        code, _, _ = self._run("data.bin")
        self.assertEqual(code, 3)

    def test_missing_file(self):
        code, _, err = self._run("missing.bin", "--url", "http://127.0.0.1:1/upload")
        self.assertEqual(code, 4)
        self.assertIn("cannot access file", err)

    def test_missing_file_is_reported_before_missing_config(self):
        self.assertFalse((self.tmp / "config.json").exists())
        code, _, err = self._run("missing.bin")
        self.assertEqual(code, 4)
        self.assertIn("cannot access file", err)
        self.assertNotIn("config.json", err)

    def test_directory_is_not_a_file(self):
        code, _, err = self._run(str(self.tmp), "--url", "http://127.0.0.1:1/upload")
        self.assertEqual(code, 4)
        self.assertIn("not a regular file", err)

    def test_invalid_destination(self):
        code, _, err = self._run("data.bin", "--url", "nonsense")
        self.assertEqual(code, 5)
        self.assertIn("Invalid destination URL", err)

    def test_no_server_is_transport_error(self):
        url = f"http://127.0.0.1:{unused_port()}/upload"
        code, _, err = self._run("data.bin", "--url", url)
        self.assertEqual(code, 6)
        self.assertIn("transport error", err)

    def test_upload_with_config_destination(self):
        output = self.tmp / "received"
        with running_server(output) as server:
            self._write_config({"destination": server_url(server)})
            code, out, err = self._run("data.bin")

        self.assertEqual(code, 0, err)
        self.assertIn('Done. Uploaded "data.bin"', out)
        self.assertEqual((output / "data.bin").read_bytes(), self.src.read_bytes())

    def test_url_flag_overrides_config(self):
        output = self.tmp / "received"
        self._write_config({"destination": "http://127.0.0.1:1/unused"})
        with running_server(output) as server:
            code, _, err = self._run("data.bin", "--url", server_url(server))
        self.assertEqual(code, 0, err)
        self.assertTrue((output / "data.bin").exists())


if __name__ == '__main__':
    unittest.main()
