"""
Execution backends - run query text and return rows.

The contract is small: run(query) returns a list of rows (dicts of
string -> string) or raises ExecutionError. An empty list is a successful
empty result, never a failure.

OsqueryiBackend pipes the query to `osqueryi --json` on stdin.
"""

import json
import logging
import subprocess
import sys
from abc import ABC, abstractmethod
from typing import Optional

from osqtool.errors import ExecutionError

logger = logging.getLogger(__name__)


Row = dict

# sys.platform prefix -> platform name used in query metadata
_PLATFORMS = (
    ("linux", "linux"),
    ("darwin", "darwin"),
    ("win32", "windows"),
    ("cygwin", "windows"),
    ("freebsd", "freebsd"),
)


def host_platform() -> str:
    """Platform of the host running the verification."""
    for prefix, name in _PLATFORMS:
        if sys.platform.startswith(prefix):
            return name
    return sys.platform


def format_row(row: Row) -> str:
    """Render a row as `key:value` pairs, sorted by key.

    Values containing a space or colon are single-quoted.
    """
    parts = []
    for key in sorted(row):
        value = str(row[key])
        if " " in value or ":" in value:
            parts.append(f"{key}:'{value}'")
        else:
            parts.append(f"{key}:{value}")
    return " ".join(parts)


class ExecutionBackend(ABC):
    """Something that can execute query text."""

    @abstractmethod
    def run(self, query: str) -> list[Row]:
        """
        Execute a query synchronously.

        Raises:
            ExecutionError: If the query could not be executed
        """
        pass


class OsqueryiBackend(ExecutionBackend):
    """Runs queries through the osqueryi shell."""

    def __init__(self, binary: str = "osqueryi", timeout: Optional[float] = None):
        self.binary = binary
        self.timeout = timeout

    @property
    def command(self) -> list[str]:
        return [self.binary, "--json"]

    def run(self, query: str) -> list[Row]:
        try:
            result = subprocess.run(
                self.command,
                input=query,
                capture_output=True,
                text=True,
                timeout=self.timeout,
                check=False,
            )
        except FileNotFoundError as e:
            raise ExecutionError(f"{self.binary} not found: {e}") from e
        except subprocess.TimeoutExpired as e:
            raise ExecutionError(f"{' '.join(self.command)} timed out after {self.timeout}s") from e

        if result.returncode != 0:
            raise ExecutionError(
                f"{' '.join(self.command)} [exit status {result.returncode}]: "
                f"{result.stderr.strip()}\nstdin: {query}"
            )

        stdout = result.stdout.strip()
        if not stdout:
            return []
        try:
            rows = json.loads(stdout)
        except json.JSONDecodeError as e:
            raise ExecutionError(f"unable to parse output: {e}") from e
        if not isinstance(rows, list):
            raise ExecutionError(f"unexpected output: expected a JSON array, got {type(rows).__name__}")
        for row in rows:
            if not isinstance(row, dict):
                raise ExecutionError(f"unexpected output: expected rows as objects, got {type(row).__name__}")
        return rows

    def __repr__(self) -> str:
        return f"OsqueryiBackend(binary={self.binary})"
