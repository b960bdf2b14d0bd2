import asyncio
import logging
from typing import Callable, List, Optional, Sequence

from oriented_imagery.exceptions import FetchFailure

log = logging.getLogger(__name__)


def image_url(template: str, station_id, sensor_id) -> str:
    return template.format(imageId=station_id, sensorId=sensor_id)


class ImageTexture:
    """CPU-side texture: keeps the decoded pixels until disposed."""

    def __init__(self, image):
        self.image = image
        self.disposed = False

    def dispose(self) -> None:
        self.image = None
        self.disposed = True


class StreamingTextureCache:
    """
    Owns the textures of the station currently displayed.

    Images are fetched per sensor and joined: a station is only bound once
    every sensor image has arrived. Binding a new station disposes the
    textures of the previous one.
    """

    def __init__(self, sensors: Sequence, fetcher, texture_factory: Callable, url_template: str):
        self.sensors = list(sensors)
        self.fetcher = fetcher
        self.texture_factory = texture_factory
        self.url_template = url_template
        self.bound_station: Optional[int] = None
        self.released_sets = 0
        self._textures: List = [None] * len(self.sensors)

    @property
    def textures(self) -> List:
        return list(self._textures)

    def urls_for(self, station) -> List[str]:
        return [image_url(self.url_template, station.id, s.id) for s in self.sensors]

    async def fetch_station(self, station) -> List:
        urls = self.urls_for(station)
        log.debug(f"[stream] Fetching {len(urls)} images for station {station.id!r}")
        results = await asyncio.gather(*(self.fetcher.fetch(u) for u in urls), return_exceptions=True)

        for url, res in zip(urls, results):
            if isinstance(res, FetchFailure):
                raise res
            if isinstance(res, Exception):
                raise FetchFailure(url, res) from res
            if isinstance(res, BaseException):
                raise res
        # results are positional: results[i] belongs to sensors[i]
        return list(results)

    def bind(self, station_index: int, images: Sequence) -> None:
        created = []
        try:
            for img in images:
                created.append(self.texture_factory(img))
        except Exception:
            for tex in created:
                tex.dispose()
            raise

        old = self._textures
        self._textures = created
        self.bound_station = station_index

        if any(t is not None for t in old):
            for tex in old:
                if tex is not None:
                    tex.dispose()
            self.released_sets += 1
            log.debug(f"[stream] Released previous texture set ({self.released_sets} so far)")

    def release(self) -> None:
        for tex in self._textures:
            if tex is not None:
                tex.dispose()
        self._textures = [None] * len(self.sensors)
        self.bound_station = None
