"""Make the root-level modules importable for tests. Shared fixtures."""

import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from hosts_merge import END_MARKER, START_MARKER  # noqa: E402


@pytest.fixture()
def managed_text():
    """Build hosts file text around a managed block holding the given hosts."""
    def build(preamble="user content\n", hosts=(), tail=""):
        body = "".join(f"0.0.0.0 {h}\n::0 {h}\n" for h in hosts)
        return preamble + START_MARKER + body + END_MARKER + tail
    return build
