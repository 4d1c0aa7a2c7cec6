"""Live conformance tests against the server named in ``.env``.

Run with ``pytest conformance``. Every test skips when no server is
configured (JMAPTEST_SESSION_URL and JMAPTEST_TOKEN).
"""

from pathlib import Path

import pytest
from dotenv import load_dotenv

load_dotenv(Path(__file__).resolve().parent.parent / ".env")


@pytest.fixture
def cleanup():
    """Collect entities to destroy after the test, newest first."""
    created = []
    yield created.append
    for entity in reversed(created):
        if not entity.destroyed:
            entity.destroy()
