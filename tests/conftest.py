"""Pytest configuration for vizcheck tests."""
import sys
from pathlib import Path

# Add src/ to path for src-layout imports
_PROJECT_ROOT = Path(__file__).parent.parent
_SRC = _PROJECT_ROOT / 'src'
if str(_SRC) not in sys.path:
    sys.path.insert(0, str(_SRC))

import pytest

from vizcheck.harness.retry import RetryPolicy
from vizcheck.visualize.inmemory import InMemoryVisualizeApp
from vizcheck.visualize.sample_data import canonical_documents


@pytest.fixture(scope='session')
def documents():
    """The canonical sample documents (built once per session)."""
    return canonical_documents()


@pytest.fixture
def app(documents):
    """A fresh in-memory app with no render lag."""
    return InMemoryVisualizeApp(documents)


@pytest.fixture
def fast_policy():
    """Retry policy with no sleeping between attempts."""
    return RetryPolicy(max_attempts=5, interval=0.0)
