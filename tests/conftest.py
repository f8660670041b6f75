import datetime
import itertools

import pytest

from footprint.collectors import Collector
from footprint.config import Config
from footprint.records import CATEGORIES


class StaticCollector(Collector):
    """Returns whatever records it was given; swap `records` between runs."""

    def __init__(self, category, records=(), error=None):
        self.category = category
        self.records = list(records)
        self.error = error
        self.calls = 0

    def collect(self, config):
        self.calls += 1
        if self.error is not None:
            raise self.error
        return list(self.records)


class FakeRegistry:
    """Registry reader backed by a dict of path -> {"values": ..., "subkeys": ...}."""

    def __init__(self, keys):
        self.keys = keys

    def subkeys(self, path):
        key = self.keys.get(path)
        return None if key is None else list(key.get("subkeys", []))

    def values(self, path):
        key = self.keys.get(path)
        return None if key is None else dict(key.get("values", {}))


@pytest.fixture
def scan_root(tmp_path):
    root = tmp_path / "scan"
    root.mkdir()
    return root


@pytest.fixture
def config(tmp_path, scan_root):
    return Config(
        roots=(scan_root,),
        enabled={c: True for c in CATEGORIES},
        output_root=tmp_path / "out",
    )


@pytest.fixture
def collectors():
    return {c: StaticCollector(c) for c in CATEGORIES}


@pytest.fixture
def clock():
    start = datetime.datetime(2026, 10, 19, 10, 0, 0)
    ticks = itertools.count()
    return lambda: start + datetime.timedelta(minutes=next(ticks))
