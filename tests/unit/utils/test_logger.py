"""Tests for library logging defaults."""

import logging
import os
import subprocess
import sys
from pathlib import Path

SRC = Path(__file__).resolve().parents[3] / "src"

CORRUPT_CACHE_READ = """
import sys, tempfile
from pathlib import Path
from tritoncloud.cache import ArtifactCache

directory = Path(tempfile.mkdtemp())
(directory / "images.json").write_text("{truncated")
assert ArtifactCache(directory).get_json("images.json") is None
"""


class TestLibraryLogging:
    """Test the package stays quiet until logging is configured."""

    def test_null_handler_installed(self):
        """Test the package logger carries a NullHandler after import."""
        code = (
            "import logging, tritoncloud.logger; "
            "print(any(isinstance(h, logging.NullHandler) "
            "for h in logging.getLogger('tritoncloud').handlers))"
        )
        result = subprocess.run(
            [sys.executable, "-c", code],
            capture_output=True,
            text=True,
            env={**os.environ, "PYTHONPATH": str(SRC)},
        )
        assert result.returncode == 0, result.stderr
        assert result.stdout.strip() == "True"

    def test_warnings_not_printed_without_setup(self):
        """Test a warning logged by the library writes nothing to stderr."""
        result = subprocess.run(
            [sys.executable, "-c", CORRUPT_CACHE_READ],
            capture_output=True,
            text=True,
            env={**os.environ, "PYTHONPATH": str(SRC)},
        )
        assert result.returncode == 0, result.stderr
        assert result.stderr == ""

    def test_setup_logging_replaces_null_handler(self):
        """Test setup_logging installs a real stderr handler."""
        from tritoncloud.logger import setup_logging

        setup_logging("DEBUG")
        handlers = logging.getLogger("tritoncloud").handlers
        assert len(handlers) == 1
        assert isinstance(handlers[0], logging.StreamHandler)
        assert not isinstance(handlers[0], logging.NullHandler)
        setup_logging()
