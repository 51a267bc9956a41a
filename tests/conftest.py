
import json

import pytest

from api_client.config import AppConfig, ConfigStorage
from api_client.workspace import WorkspaceStore


class MemoryStorage(ConfigStorage):
    def __init__(self, config=None):
        self.config = config or AppConfig()
        self.saved = []

    def load(self):
        return self.config.model_copy()

    def save(self, config):
        self.saved.append(config.model_copy())


def write_request(folder, filename, method="GET", url="http://example.com", **extra):
    data = {"name": filename.rsplit(".", 1)[0], "method": method, "url": url}
    data.update(extra)
    path = folder / filename
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


@pytest.fixture
def storage():
    return MemoryStorage()


@pytest.fixture
def store(tmp_path, storage):
    ws = WorkspaceStore(AppConfig(), storage)
    ws.open(tmp_path)
    return ws
