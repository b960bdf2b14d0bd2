import asyncio
import io
import json
import logging
import os
import urllib.parse
import urllib.request

import numpy as np
from PIL import Image

from oriented_imagery.exceptions import FetchFailure

log = logging.getLogger(__name__)

FETCH_TIMEOUT = 30.0


def read_bytes(url: str, timeout: float = FETCH_TIMEOUT) -> bytes:
    """Blocking read of a local path, file:// URL or http(s):// URL."""
    parsed = urllib.parse.urlparse(url)
    if parsed.scheme in ("http", "https"):
        with urllib.request.urlopen(url, timeout=timeout) as resp:
            return resp.read()
    if parsed.scheme == "file":
        path = urllib.request.url2pathname(parsed.path)
    else:
        path = url
    with open(os.path.expanduser(path), "rb") as f:
        return f.read()


def decode_image(data: bytes) -> np.ndarray:
    with Image.open(io.BytesIO(data)) as img:
        return np.array(img.convert("RGBA"), dtype=np.uint8)


async def load_json(url: str):
    loop = asyncio.get_running_loop()
    try:
        data = await loop.run_in_executor(None, read_bytes, url)
        return json.loads(data.decode("utf-8"))
    except (OSError, ValueError) as exc:
        raise FetchFailure(url, exc) from exc


async def load_sources(orientations_url: str, calibrations_url: str):
    """Fetch the station and sensor documents; both must succeed."""
    stations, sensors = await asyncio.gather(load_json(orientations_url), load_json(calibrations_url))
    log.info(f"[sources] {len(stations)} station records, {len(sensors)} sensor records")
    return stations, sensors


class ImageFetcher:
    """Fetches and decodes source images off the event loop thread."""

    def __init__(self, timeout: float = FETCH_TIMEOUT, executor=None):
        self.timeout = timeout
        self.executor = executor

    def _load(self, url: str) -> np.ndarray:
        return decode_image(read_bytes(url, self.timeout))

    async def fetch(self, url: str) -> np.ndarray:
        loop = asyncio.get_running_loop()
        try:
            img = await loop.run_in_executor(self.executor, self._load, url)
        except (OSError, ValueError, Image.DecompressionBombError) as exc:
            raise FetchFailure(url, exc) from exc
        log.debug(f"[sources] Fetched {url} ({img.shape[1]}x{img.shape[0]})")
        return img
