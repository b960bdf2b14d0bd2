import asyncio
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Set

import numpy as np

from oriented_imagery.calibration import Sensor, parse_sensors, rig_uses_distortion
from oriented_imagery.constants import CRS_GEOCENTRIC, NO_DISTORTION_LIMIT2
from oriented_imagery.exceptions import FetchFailure, InvalidCalibration, NoStationsAvailable
from oriented_imagery.registry import Reprojector, StationRegistry
from oriented_imagery.selector import StationSelector
from oriented_imagery.shaders import (
    U_DISTORTION,
    U_L1L2,
    U_PPS,
    U_SENSOR_MVP,
    U_SIZE,
    U_TEXTURE,
    ProgramSource,
    generate_program,
)
from oriented_imagery.sources import ImageFetcher, load_sources
from oriented_imagery.streaming import ImageTexture, StreamingTextureCache
from oriented_imagery.transforms import (
    AttitudeConvention,
    StationTransforms,
    build_station_transforms,
    update_sensor_matrices,
)

log = logging.getLogger(__name__)


@dataclass
class StationMarkers:
    indices: List[int]
    origin: np.ndarray    # world position of the first station in the box
    offsets: np.ndarray   # (n, 3) positions relative to origin


@dataclass
class OrientedImageryState:
    registry: StationRegistry
    sensors: List[Sensor]
    convention: AttitudeConvention
    program: ProgramSource
    cache: StreamingTextureCache
    static_uniforms: dict
    sensor_matrices: np.ndarray
    selector: StationSelector = field(default_factory=StationSelector)
    transforms: Optional[StationTransforms] = None
    camera_to_world: np.ndarray = field(default_factory=lambda: np.eye(4, dtype=np.float64))
    has_camera: bool = False
    load_token: int = 0
    tasks: Set[asyncio.Task] = field(default_factory=set)


def _static_uniforms(sensors: List[Sensor], with_distortion: bool) -> dict:
    n = len(sensors)
    uniforms = {U_SIZE: np.array([s.size for s in sensors], dtype=np.float32).reshape(n, 2)}
    if not with_distortion:
        return uniforms

    pps = np.zeros((n, 2), dtype=np.float32)
    dist = np.zeros((n, 4), dtype=np.float32)
    l1l2 = np.zeros((n, 3), dtype=np.float32)
    for i, s in enumerate(sensors):
        d = s.distortion
        if d is None:
            # undistorted sensor in a distorted rig: identity correction
            dist[i, 3] = NO_DISTORTION_LIMIT2
            continue
        pps[i] = d.pps
        dist[i, :3] = d.poly357
        dist[i, 3] = min(d.limit2, NO_DISTORTION_LIMIT2)
        l1l2[i] = (d.l1l2[0], d.l1l2[1], d.etats)
    uniforms[U_PPS] = pps
    uniforms[U_DISTORTION] = dist
    uniforms[U_L1L2] = l1l2
    return uniforms


def _set_camera(out: np.ndarray, viewpoint) -> None:
    # writes into the preallocated 4x4 so the update tick does not allocate
    m = np.asarray(viewpoint, dtype=np.float64)
    if m.shape == (3,):
        out.fill(0.0)
        np.fill_diagonal(out, 1.0)
        out[:3, 3] = m
    else:
        out[...] = m.reshape(4, 4)


class OrientedImageryLayer:
    """
    Immersive layer compositing the images of the capture station nearest to
    the viewer.

    The layer is driven from a single asyncio event loop: on_viewpoint_changed()
    must be called from a running loop since it schedules image fetches.
    """

    def __init__(self, image_template: str, fetcher=None, texture_factory: Callable = None,
                 reprojector: Reprojector = None):
        self.image_template = image_template
        self.fetcher = fetcher or ImageFetcher()
        self.texture_factory = texture_factory or ImageTexture
        self.reprojector = reprojector or Reprojector()
        self.state: Optional[OrientedImageryState] = None

    def initialize(self, station_records, sensor_records, offset=(0.0, 0.0, 0.0),
                   attitude_convention=AttitudeConvention.MICMAC, source_crs: str = CRS_GEOCENTRIC):
        convention = AttitudeConvention.parse(attitude_convention)
        sensors = parse_sensors(sensor_records or [], convention)
        if not sensors:
            raise InvalidCalibration("the rig has no sensor")
        registry = StationRegistry.from_records(station_records, offset, source_crs, self.reprojector)

        with_distortion = rig_uses_distortion(sensors)
        if with_distortion and not all(s.distortion is not None for s in sensors):
            log.warning("[layer] Mixed rig: sensors without distortion data use an identity correction")

        state = OrientedImageryState(
            registry=registry,
            sensors=sensors,
            convention=convention,
            program=generate_program(len(sensors), with_distortion),
            cache=StreamingTextureCache(sensors, self.fetcher, self.texture_factory, self.image_template),
            static_uniforms=_static_uniforms(sensors, with_distortion),
            sensor_matrices=np.zeros((len(sensors), 4, 4), dtype=np.float32),
        )
        if self.state is not None:
            self.release()
        self.state = state
        log.info(
            f"[layer] Initialized {len(registry)} stations, {len(sensors)} sensors, "
            f"distortion={'on' if with_distortion else 'off'}"
        )
        return state

    def _require_state(self) -> OrientedImageryState:
        if self.state is None:
            raise RuntimeError("Layer is not initialized")
        return self.state

    def on_viewpoint_changed(self, viewpoint) -> None:
        """
        Update tick. `viewpoint` is the camera-to-world 4x4 matrix (or a bare
        world position). Starts loading the nearest station when it changes and
        refreshes the per-sensor matrices.
        """
        st = self._require_state()
        _set_camera(st.camera_to_world, viewpoint)
        st.has_camera = True
        try:
            index = st.selector.select(st.registry.positions, st.camera_to_world[:3, 3])
        except NoStationsAvailable:
            log.debug("[layer] No station to display")
            return

        if index is not None:
            if index == st.cache.bound_station:
                # back to the station already on screen: supersede any load in flight
                st.load_token += 1
                self._activate(st, index)
            else:
                self._start_load(st, index)

        self._update_matrices(st)

    def _start_load(self, st: OrientedImageryState, index: int) -> None:
        st.load_token += 1
        task = asyncio.get_running_loop().create_task(self._load_station(st, index, st.load_token))
        st.tasks.add(task)
        task.add_done_callback(lambda t: self._load_done(st, t))

    @staticmethod
    def _load_done(st: OrientedImageryState, task: asyncio.Task) -> None:
        st.tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            log.error(f"[stream] Station load crashed: {type(exc).__name__}: {exc}", exc_info=exc)

    async def _load_station(self, st: OrientedImageryState, index: int, token: int) -> bool:
        station = st.registry[index]
        try:
            images = await st.cache.fetch_station(station)
        except FetchFailure as exc:
            if token == st.load_token:
                st.selector.mark_failed(index)
            log.warning(f"[stream] Station {station.id!r} not loaded, keeping previous imagery: {exc}")
            return False

        if token != st.load_token:
            log.debug(f"[stream] Dropping stale images for station {station.id!r}")
            return False

        try:
            st.cache.bind(index, images)
        except Exception as exc:
            # no texture set was bound, so the station is retried on the next tick
            st.selector.mark_failed(index)
            log.warning(f"[stream] Station {station.id!r} images rejected, keeping previous imagery: "
                        f"{type(exc).__name__}: {exc}")
            return False
        self._activate(st, index)
        self._update_matrices(st)
        log.info(f"[stream] ready({index}) station {station.id!r}")
        return True

    def _activate(self, st: OrientedImageryState, index: int) -> None:
        st.transforms = build_station_transforms(st.registry[index], st.sensors, st.convention)
        st.selector.mark_ready(index)

    def _update_matrices(self, st: OrientedImageryState) -> None:
        if st.transforms is None or not st.has_camera:
            return
        update_sensor_matrices(st.transforms, st.camera_to_world, st.sensor_matrices)

    async def wait_until_settled(self) -> None:
        """Wait for every image load in flight, superseded ones included."""
        st = self._require_state()
        while st.tasks:
            await asyncio.wait(set(st.tasks))

    def current_station_index(self) -> int:
        if self.state is None:
            return -1
        index = self.state.selector.state.station_index
        return -1 if index is None else index

    def station_position(self, index: int) -> np.ndarray:
        return self._require_state().registry.position(index)

    def next_station_position(self) -> np.ndarray:
        st = self._require_state()
        if len(st.registry) == 0:
            raise NoStationsAvailable()
        index = (self.current_station_index() + 1) % len(st.registry)
        return st.registry.position(index)

    def composite_program(self) -> ProgramSource:
        return self._require_state().program

    @property
    def displayed_station(self) -> Optional[int]:
        if self.state is None:
            return None
        return self.state.cache.bound_station

    def uniforms(self) -> Optional[dict]:
        """Values for the composite program, or None while nothing is displayed."""
        st = self._require_state()
        if st.cache.bound_station is None or st.transforms is None:
            return None
        values = dict(st.static_uniforms)
        values[U_SENSOR_MVP] = st.sensor_matrices
        values[U_TEXTURE] = st.cache.textures
        return values

    def stations_in_extent(self, lower, upper) -> Optional[StationMarkers]:
        st = self._require_state()
        pos = st.registry.positions
        lo = np.asarray(lower, dtype=np.float64)
        hi = np.asarray(upper, dtype=np.float64)
        inside = np.all((pos >= lo) & (pos <= hi), axis=1)
        indices = [int(i) for i in np.flatnonzero(inside)]
        if not indices:
            return None
        origin = pos[indices[0]].copy()
        return StationMarkers(indices=indices, origin=origin, offsets=pos[indices] - origin)

    def release(self) -> None:
        st = self.state
        if st is None:
            return
        # loads still in flight hold this state; a new token makes them drop their images
        st.load_token += 1
        st.cache.release()
        st.selector = StationSelector()
        st.transforms = None


async def load_layer(config, fetcher=None, texture_factory: Callable = None,
                     reprojector: Reprojector = None) -> OrientedImageryLayer:
    stations, sensors = await load_sources(config.orientations, config.calibrations)
    layer = OrientedImageryLayer(
        config.images,
        fetcher=fetcher,
        texture_factory=texture_factory,
        reprojector=reprojector,
    )
    layer.initialize(
        stations,
        sensors,
        offset=config.offset,
        attitude_convention=config.orientation_type,
        source_crs=config.projection,
    )
    return layer
