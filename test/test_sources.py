import asyncio
import json

import numpy as np
import pytest
from PIL import Image

from conftest import sensor_record, station_record
from oriented_imagery.config import load_config
from oriented_imagery.exceptions import FetchFailure
from oriented_imagery.layer import load_layer
from oriented_imagery.shaders import U_TEXTURE
from oriented_imagery.sources import ImageFetcher, load_sources
from oriented_imagery.streaming import ImageTexture, image_url


def _png(path, color, size=(8, 4)):
    Image.new("RGB", size, color).save(str(path))


def test_image_url():
    assert image_url("http://h/{imageId}/{sensorId}.jpg", "st-12", 3) == "http://h/st-12/3.jpg"


def test_fetch_decodes_to_rgba(tmp_path):
    _png(tmp_path / "img.png", (255, 0, 0))
    img = asyncio.run(ImageFetcher().fetch(str(tmp_path / "img.png")))
    assert img.shape == (4, 8, 4)
    assert img.dtype == np.uint8
    assert tuple(img[0, 0]) == (255, 0, 0, 255)

    uri = (tmp_path / "img.png").as_uri()
    assert asyncio.run(ImageFetcher().fetch(uri)).shape == (4, 8, 4)


def test_fetch_failures(tmp_path):
    with pytest.raises(FetchFailure) as err:
        asyncio.run(ImageFetcher().fetch(str(tmp_path / "missing.png")))
    assert err.value.url.endswith("missing.png")

    (tmp_path / "junk.png").write_bytes(b"not an image")
    with pytest.raises(FetchFailure):
        asyncio.run(ImageFetcher().fetch(str(tmp_path / "junk.png")))


def test_load_sources_requires_both(tmp_path):
    (tmp_path / "stations.json").write_text(json.dumps([station_record("a", 0.0)]))
    with pytest.raises(FetchFailure):
        asyncio.run(load_sources(str(tmp_path / "stations.json"), str(tmp_path / "cameras.json")))


def test_layer_from_config(tmp_path):
    stations = [station_record("s0", 0.0), station_record("s1", 10.0)]
    sensors = [sensor_record("a"), sensor_record("b")]
    (tmp_path / "stations.json").write_text(json.dumps(stations))
    (tmp_path / "cameras.json").write_text(json.dumps(sensors))
    for sid in ("s0", "s1"):
        for cid, color in (("a", (255, 0, 0)), ("b", (0, 0, 255))):
            _png(tmp_path / f"{sid}_{cid}.png", color)
    (tmp_path / "layer.yaml").write_text(
        "orientations: stations.json\n"
        "calibrations: cameras.json\n"
        "images: \"{imageId}_{sensorId}.png\"\n"
    )
    cfg = load_config(str(tmp_path / "layer.yaml"))

    async def scenario():
        layer = await load_layer(cfg)
        layer.on_viewpoint_changed((8.0, 0.0, 0.0))
        await layer.wait_until_settled()
        return layer

    layer = asyncio.run(scenario())
    assert layer.displayed_station == 1
    textures = layer.uniforms()[U_TEXTURE]
    assert all(isinstance(t, ImageTexture) for t in textures)
    assert tuple(textures[0].image[0, 0]) == (255, 0, 0, 255)
    assert tuple(textures[1].image[0, 0]) == (0, 0, 255, 255)
    layer.release()
    assert all(t.disposed for t in textures)
