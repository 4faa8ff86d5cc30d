import pytest

from pkgstore import const


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    """Keep credentials from the developer's environment out of tests."""
    monkeypatch.delenv(const.PROJECT_ID_ENV, raising=False)
    monkeypatch.delenv(const.KEY_FILENAME_ENV, raising=False)
