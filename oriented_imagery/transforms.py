import enum
import math
from dataclasses import dataclass, field

import numpy as np

from oriented_imagery.constants import CONVENTION_MICMAC, CONVENTION_STEREOPOLIS2
from oriented_imagery.math_utils import (
    look_at_rotation,
    mat4_from_mat3,
    mat4_rigid_inverse,
    mat4_translation,
)


class AttitudeConvention(enum.Enum):
    """How a station's (roll, pitch, heading) triple is turned into a rotation."""

    STEREOPOLIS2 = CONVENTION_STEREOPOLIS2
    MICMAC = CONVENTION_MICMAC

    @classmethod
    def parse(cls, value) -> "AttitudeConvention":
        if isinstance(value, cls):
            return value
        name = str(value or "").strip().lower()
        for conv in cls:
            if conv.value.lower() == name:
                return conv
        raise ValueError(f"Unknown attitude convention {value!r} (expected 'Stereopolis2' or 'MicMac')")


def stereopolis2_rotation(roll_deg: float, pitch_deg: float, heading_deg: float) -> np.ndarray:
    # Euler angles (x=pitch, y=roll, z=heading) in ZXY order: Rz @ Rx @ Ry.
    x = math.radians(pitch_deg)
    y = math.radians(roll_deg)
    z = math.radians(heading_deg)
    a, b = math.cos(x), math.sin(x)
    c, d = math.cos(y), math.sin(y)
    e, f = math.cos(z), math.sin(z)
    ce, cf, de, df = c * e, c * f, d * e, d * f
    return np.array([
        [ce - df * b, -a * f, de + cf * b],
        [cf + de * b,  a * e, df - ce * b],
        [     -a * d,      b,      a * c],
    ], dtype=np.float64)


def micmac_rotation(roll_deg: float, pitch_deg: float, heading_deg: float) -> np.ndarray:
    # Omega (X), Phi (Y), Kappa (Z) aerial photogrammetry rotation.
    o = math.radians(float(roll_deg))
    p = math.radians(float(pitch_deg))
    k = math.radians(float(heading_deg))
    co, so = math.cos(o), math.sin(o)
    cp, sp = math.cos(p), math.sin(p)
    ck, sk = math.cos(k), math.sin(k)
    return np.array([
        [cp * ck,  co * sk + so * sp * ck,  so * sk - co * sp * ck],
        [cp * sk, -co * ck + so * sp * sk, -so * ck - co * sp * sk],
        [    -sp,                 so * cp,                -co * cp],
    ], dtype=np.float64)


_STATION_ROTATIONS = {
    AttitudeConvention.STEREOPOLIS2: stereopolis2_rotation,
    AttitudeConvention.MICMAC: micmac_rotation,
}

# Sensor frame correction applied on the rig side of each sensor rotation.
_RIG_CORRECTIONS = {
    AttitudeConvention.STEREOPOLIS2: np.array([
        [0.0, -1.0, 0.0],
        [1.0,  0.0, 0.0],
        [0.0,  0.0, 1.0],
    ], dtype=np.float64),
    AttitudeConvention.MICMAC: np.eye(3, dtype=np.float64),
}


def station_rotation(convention: AttitudeConvention, roll: float, pitch: float, heading: float) -> np.ndarray:
    return _STATION_ROTATIONS[convention](roll, pitch, heading)


def rig_correction(convention: AttitudeConvention) -> np.ndarray:
    return _RIG_CORRECTIONS[convention].copy()


def world_to_station_local(position) -> np.ndarray:
    """Geocentric -> local tangent frame centred on `position`, +Z along the radial up."""
    pos = np.asarray(position, dtype=np.float64).reshape(3)
    rot = look_at_rotation(pos, pos * 1.1)
    return mat4_from_mat3(rot.T) @ mat4_translation(-pos[0], -pos[1], -pos[2])


def station_local_to_world(position) -> np.ndarray:
    return mat4_rigid_inverse(world_to_station_local(position))


@dataclass
class StationTransforms:
    """Matrices that only change when the displayed station changes."""
    station_index: int
    world_to_local: np.ndarray     # 4x4
    local_to_pano: np.ndarray      # 4x4
    local_to_texture: np.ndarray   # (N, 4, 4)
    camera_to_local: np.ndarray = field(default_factory=lambda: np.eye(4, dtype=np.float64))  # per-frame scratch


def build_station_transforms(station, sensors, convention: AttitudeConvention) -> StationTransforms:
    world_to_local = world_to_station_local(station.world_position)
    local_to_pano = mat4_from_mat3(
        station_rotation(convention, station.roll, station.pitch, station.heading)
    )
    local_to_texture = np.empty((len(sensors), 4, 4), dtype=np.float64)
    for i, sensor in enumerate(sensors):
        local_to_texture[i] = sensor.pano_to_texture @ local_to_pano
    return StationTransforms(
        station_index=station.index,
        world_to_local=world_to_local,
        local_to_pano=local_to_pano,
        local_to_texture=local_to_texture,
    )


def update_sensor_matrices(transforms: StationTransforms, camera_to_world: np.ndarray, out: np.ndarray) -> np.ndarray:
    """
    Per-frame update: out[i] = local_to_texture[i] @ world_to_local @ camera_to_world.

    `out` is a preallocated (N, 4, 4) float32 array; it is written in place, as
    is the camera-to-local scratch matrix held by `transforms`.
    """
    camera_to_local = transforms.camera_to_local
    np.matmul(transforms.world_to_local, camera_to_world, out=camera_to_local)
    np.matmul(transforms.local_to_texture, camera_to_local, out=out, casting="same_kind")
    return out
