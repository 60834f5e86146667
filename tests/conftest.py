import pytest

from sidequests.storage import PreferenceStore, SharedBlobStore


@pytest.fixture
def preferences(tmp_path):
    return PreferenceStore(tmp_path / "preferences.sqlite")


@pytest.fixture
def shared_store(tmp_path):
    return SharedBlobStore(tmp_path / "shared.sqlite")
