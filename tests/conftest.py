from __future__ import annotations

from pathlib import Path
import sys


import pytest


# Ensure the repository root (parent of ./tests) is importable during pytest collection.
# This avoids ModuleNotFoundError for imports like `import docstore...` under pytest import modes
# that don't automatically prepend the cwd/rootdir to sys.path.
REPO_ROOT = Path(__file__).resolve().parents[1]
if str(REPO_ROOT) not in sys.path:
    sys.path.insert(0, str(REPO_ROOT))


@pytest.fixture
def data_dir(tmp_path: Path) -> Path:
    """A storage folder that does not exist yet; the database creates it on open."""
    return tmp_path / "data"


@pytest.fixture
def db(data_dir: Path):
    from docstore import DocumentDatabase

    database = DocumentDatabase(data_dir, max_cache_items=100)
    yield database
    database.close()


@pytest.fixture
def api_settings(tmp_path: Path):
    from settings import Settings

    return Settings(
        folder_path=str(tmp_path / "api-data"),
        max_cache_items=100,
        api_key=None,
        enable_realtime=True,
        debug_log_requests=True,
        log_level="INFO",
    )


@pytest.fixture
def client(api_settings):
    """
    TestClient with lifespan running, pointed at a temp storage folder.
    """
    from fastapi.testclient import TestClient

    import app as app_module

    with TestClient(app_module.create_app(api_settings)) as test_client:
        yield test_client
