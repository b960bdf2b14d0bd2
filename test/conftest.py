import asyncio

import numpy as np
import pytest

from oriented_imagery.exceptions import FetchFailure
from oriented_imagery.layer import OrientedImageryLayer

PROJECTION = [100.0, 0.0, 50.0, 0.0, 100.0, 50.0, 0.0, 0.0, 1.0]
IDENTITY = [1.0, 0.0, 0.0, 0.0, 1.0, 0.0, 0.0, 0.0, 1.0]


class FakeFetcher:
    """Image fetcher that never touches the network; can fail or hold URLs."""

    def __init__(self, fail=(), gates=None):
        self.calls = []
        self.fail = set(fail)
        self.gates = gates if gates is not None else {}

    async def fetch(self, url):
        self.calls.append(url)
        gate = self.gates.get(url)
        if gate is not None:
            await gate.wait()
        else:
            await asyncio.sleep(0)
        if url in self.fail:
            raise FetchFailure(url, IOError("boom"))
        return np.full((4, 4, 4), len(self.calls), dtype=np.uint8)


class FakeTexture:
    def __init__(self, image):
        self.image = image
        self.dispose_count = 0

    def dispose(self):
        self.dispose_count += 1


class TextureLog:
    def __init__(self):
        self.created = []

    def __call__(self, image):
        tex = FakeTexture(image)
        self.created.append(tex)
        return tex

    @property
    def disposed(self):
        return [t for t in self.created if t.dispose_count]


def station_record(sid, x, y=0.0, z=0.0, roll=0.0, pitch=0.0, heading=0.0):
    return {"id": sid, "easting": x, "northing": y, "altitude": z,
            "roll": roll, "pitch": pitch, "heading": heading}


def sensor_record(sid, **extra):
    rec = {"id": sid, "rotation": list(IDENTITY), "projection": list(PROJECTION), "size": [100.0, 100.0]}
    rec.update(extra)
    return rec


@pytest.fixture
def two_stations():
    return [station_record("s0", 0.0), station_record("s1", 10.0)]


@pytest.fixture
def two_sensors():
    return [sensor_record("a"), sensor_record("b")]


@pytest.fixture
def textures():
    return TextureLog()


@pytest.fixture
def make_layer(two_stations, two_sensors, textures):
    def factory(fetcher=None, stations=None, sensors=None, **kwargs):
        layer = OrientedImageryLayer(
            "{imageId}_{sensorId}",
            fetcher=fetcher or FakeFetcher(),
            texture_factory=textures,
        )
        layer.initialize(
            two_stations if stations is None else stations,
            two_sensors if sensors is None else sensors,
            **kwargs,
        )
        return layer
    return factory
