import logging
import os
from dataclasses import dataclass, field

import yaml

from oriented_imagery.constants import (
    CRS_GEOCENTRIC,
    CONVENTION_MICMAC,
    DEFAULT_FOV,
    DEFAULT_SPHERE_RADIUS,
    DEFAULT_SPHERE_STEPS,
)
from oriented_imagery.transforms import AttitudeConvention

log = logging.getLogger(__name__)

REQUIRED_KEYS = ("orientations", "calibrations", "images")


def _as_bool(value, default: bool = False) -> bool:
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("1", "true", "yes", "on")
    return bool(value)


def _resolve(base_dir: str, ref: str) -> str:
    # Relative file references are taken relative to the config file.
    if "://" in ref or os.path.isabs(ref):
        return ref
    return os.path.join(base_dir, ref)


@dataclass
class ViewerConfig:
    fov: float = DEFAULT_FOV
    start_station: int = 0
    fullscreen: bool = False


@dataclass
class LayerConfig:
    orientations: str
    calibrations: str
    images: str
    id: str = "oriented_images"
    offset: tuple = (0.0, 0.0, 0.0)
    projection: str = CRS_GEOCENTRIC
    orientation_type: AttitudeConvention = AttitudeConvention.MICMAC
    sphere_radius: float = DEFAULT_SPHERE_RADIUS
    sphere_lat_steps: int = DEFAULT_SPHERE_STEPS
    sphere_lon_steps: int = DEFAULT_SPHERE_STEPS
    viewer: ViewerConfig = field(default_factory=ViewerConfig)

    @classmethod
    def from_dict(cls, data: dict, base_dir: str = ".") -> "LayerConfig":
        if not isinstance(data, dict):
            raise ValueError("Layer config must be a mapping")
        missing = [k for k in REQUIRED_KEYS if not data.get(k)]
        if missing:
            raise ValueError(f"Layer config is missing {', '.join(missing)}")

        off = data.get("offset") or {}
        offset = (float(off.get("x", 0.0)), float(off.get("y", 0.0)), float(off.get("z", 0.0)))

        view = data.get("viewer") or {}
        viewer = ViewerConfig(
            fov=float(view.get("fov", DEFAULT_FOV)),
            start_station=max(0, int(view.get("start_station", 0))),
            fullscreen=_as_bool(view.get("fullscreen"), False),
        )

        return cls(
            orientations=_resolve(base_dir, str(data["orientations"])),
            calibrations=_resolve(base_dir, str(data["calibrations"])),
            images=_resolve(base_dir, str(data["images"])),
            id=str(data.get("id", "oriented_images")),
            offset=offset,
            projection=str(data.get("projection", CRS_GEOCENTRIC)),
            orientation_type=AttitudeConvention.parse(data.get("orientation_type", CONVENTION_MICMAC)),
            sphere_radius=float(data.get("sphere_radius", DEFAULT_SPHERE_RADIUS)),
            sphere_lat_steps=max(8, int(data.get("sphere_lat_steps", DEFAULT_SPHERE_STEPS))),
            sphere_lon_steps=max(8, int(data.get("sphere_lon_steps", DEFAULT_SPHERE_STEPS))),
            viewer=viewer,
        )


def load_config(path: str) -> LayerConfig:
    if not os.path.exists(path):
        raise FileNotFoundError(f"Config file {path} not found.")

    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}

    base_dir = os.path.dirname(os.path.abspath(path))
    cfg = LayerConfig.from_dict(data, base_dir=base_dir)
    log.info(f"[config] Layer '{cfg.id}' from {path} ({cfg.orientation_type.value}, {cfg.projection})")
    return cfg
