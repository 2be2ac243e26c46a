"""
Pytest configuration and shared fixtures for all modloader tests.

Loaders are cheap, so every test gets a fresh one. The compiler's lark
parser is cached per process, which keeps that affordable.
"""

import sys
import pytest
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))
from modloader.frontend.compiler import ModuleCompiler
from modloader.loader import Loader, LoaderHooks, LoaderOptions, MemoryFetcher
from modloader.shared.errors import MutedErrorReporter

FIXTURES_DIR = Path(__file__).parent / "fixtures"
from tests.test_utils import MEMORY_BASE_URL


# =============================================================================
# Shared across the session
# =============================================================================

@pytest.fixture(scope="session")
def session_compiler():
    """
    Session-scoped compiler shared across ALL tests.

    ModuleCompiler holds no per-compile state, so sharing it is safe.
    """
    return ModuleCompiler()


@pytest.fixture(scope="session")
def fixtures_dir():
    return FIXTURES_DIR


# =============================================================================
# Fresh per test
# =============================================================================

@pytest.fixture
def compiler(session_compiler):
    return session_compiler


@pytest.fixture
def reporter():
    """Records every report without writing to stderr."""
    return MutedErrorReporter()


@pytest.fixture
def loader(reporter):
    """Loader rooted at tests/fixtures, reading real files."""
    return Loader(options=LoaderOptions(base_url=str(FIXTURES_DIR)), reporter=reporter)


@pytest.fixture
def memory_fetcher():
    return MemoryFetcher()


@pytest.fixture
def memory_loader(memory_fetcher, reporter):
    """
    Loader whose fetch stage reads from `memory_fetcher`.

    Add sources with memory_fetcher.add(address(name), text).
    """
    hooks = LoaderHooks.default(fetcher=memory_fetcher)
    return Loader(hooks=hooks, options=LoaderOptions(base_url=MEMORY_BASE_URL), reporter=reporter)


# =============================================================================
# Markers
# =============================================================================

def pytest_configure(config):
    """Declare the markers used by the loader tests."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
    config.addinivalue_line(
        "markers", "unit: marks tests as unit tests"
    )
