import logging
from dataclasses import dataclass
from typing import List, Sequence

import numpy as np
from pyproj import CRS, Transformer
from pyproj.exceptions import CRSError, ProjError

from oriented_imagery.constants import CRS_GEOCENTRIC, CRS_GEOGRAPHIC
from oriented_imagery.exceptions import ReprojectionError

log = logging.getLogger(__name__)

STATION_FIELDS = ("id", "easting", "northing", "altitude", "roll", "pitch", "heading")


@dataclass(frozen=True)
class CaptureStation:
    index: int
    id: object
    world_position: tuple   # geocentric (x, y, z)
    roll: float
    pitch: float
    heading: float


class Reprojector:
    """Converts station coordinates from a source CRS to geocentric coordinates."""

    def __init__(self):
        self._transformers = {}

    def _transformer(self, src: str, dst: str) -> Transformer:
        key = (src, dst)
        tf = self._transformers.get(key)
        if tf is None:
            try:
                tf = Transformer.from_crs(CRS(src), CRS(dst), always_xy=True)
            except (CRSError, ProjError) as exc:
                raise ReprojectionError(src, str(exc)) from exc
            self._transformers[key] = tf
        return tf

    def to_geocentric(self, crs: str, x, y, z) -> np.ndarray:
        """
        Returns an (n, 3) array of geocentric coordinates.

        Geocentric input is passed through, geographic input (lon, lat, h) takes
        one step, any other (projected) system goes through geographic first.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        z = np.asarray(z, dtype=np.float64)
        src = str(crs or "").strip()
        if not src:
            raise ReprojectionError(crs, "no source reference system given")
        name = src.upper()

        if name == CRS_GEOCENTRIC:
            steps = []
        elif name == CRS_GEOGRAPHIC:
            steps = [self._transformer(CRS_GEOGRAPHIC, CRS_GEOCENTRIC)]
        else:
            steps = [self._transformer(src, CRS_GEOGRAPHIC), self._transformer(CRS_GEOGRAPHIC, CRS_GEOCENTRIC)]

        if x.size == 0:
            steps = []
        try:
            for tf in steps:
                x, y, z = (np.asarray(c, dtype=np.float64) for c in tf.transform(x, y, z))
        except ProjError as exc:
            raise ReprojectionError(crs, str(exc)) from exc
        out = np.column_stack((np.atleast_1d(x), np.atleast_1d(y), np.atleast_1d(z)))

        if out.size and not np.all(np.isfinite(out)):
            raise ReprojectionError(crs, "transformation produced non-finite coordinates")
        return out.reshape(-1, 3)


def _station_values(record, i: int):
    if not isinstance(record, dict):
        raise ValueError(f"Station record #{i} must be a mapping")
    missing = [k for k in STATION_FIELDS if k not in record]
    if missing:
        raise ValueError(f"Station record #{i} is missing {', '.join(missing)}")
    try:
        return [float(record[k]) for k in STATION_FIELDS[1:]]
    except (TypeError, ValueError) as exc:
        raise ValueError(f"Station record #{i} has a non-numeric field: {exc}") from exc


class StationRegistry:
    """All capture stations of a layer, in load order."""

    def __init__(self, stations: Sequence[CaptureStation]):
        self._stations: List[CaptureStation] = list(stations)
        self._positions = np.array(
            [s.world_position for s in self._stations], dtype=np.float64
        ).reshape(-1, 3)
        self._positions.setflags(write=False)

    @classmethod
    def from_records(cls, records, offset=(0.0, 0.0, 0.0), crs: str = CRS_GEOCENTRIC, reprojector: Reprojector = None):
        records = list(records or [])
        reprojector = reprojector or Reprojector()
        values = np.array([_station_values(r, i) for i, r in enumerate(records)], dtype=np.float64).reshape(-1, 6)
        ox, oy, oz = (float(v) for v in offset)

        world = reprojector.to_geocentric(crs, values[:, 0] + ox, values[:, 1] + oy, values[:, 2] + oz)

        stations = [
            CaptureStation(
                index=i,
                id=r["id"],
                world_position=tuple(float(c) for c in world[i]),
                roll=values[i, 3],
                pitch=values[i, 4],
                heading=values[i, 5],
            )
            for i, r in enumerate(records)
        ]
        log.info(f"[registry] Loaded {len(stations)} stations from {crs}")
        return cls(stations)

    def __len__(self) -> int:
        return len(self._stations)

    def __getitem__(self, index: int) -> CaptureStation:
        return self._stations[index]

    def __iter__(self):
        return iter(self._stations)

    @property
    def positions(self) -> np.ndarray:
        return self._positions

    def position(self, index: int) -> np.ndarray:
        return self._positions[index].copy()
