"""
Rig calibration: per-sensor projection, rig rotation and lens distortion.

Every numeric function here mirrors, on the CPU, what the composite fragment
program does on the GPU, so the two can be checked against each other.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional

import numpy as np

from oriented_imagery.constants import BORDER_FADE
from oriented_imagery.exceptions import InvalidCalibration
from oriented_imagery.math_utils import mat4_from_mat3, mat4_translation
from oriented_imagery.transforms import AttitudeConvention, rig_correction

log = logging.getLogger(__name__)

NEWTON_ITERATIONS = 50
NEWTON_TOLERANCE = 1e-12


@dataclass
class Distortion:
    """
    Radial lens model, fitted in pixel units.

    pps      principal point of symmetry (2,)
    poly357  coefficients of the r^3, r^5, r^7 terms (3,)
    limit2   squared validity radius; points beyond it have no sample
    l1l2     affine/skew terms (2,); zeros select the plain radial model
    etats    normalization scale of the affine model
    """
    pps: np.ndarray
    poly357: np.ndarray
    limit2: float
    l1l2: np.ndarray
    etats: float

    @property
    def has_affine(self) -> bool:
        return bool(self.l1l2[0] != 0.0 or self.l1l2[1] != 0.0)


@dataclass
class Sensor:
    id: object
    rig_to_sensor: np.ndarray     # 3x3
    projection: np.ndarray        # 3x3
    size: np.ndarray              # (width, height)
    position: np.ndarray          # sensor centre in the rig frame
    distortion: Optional[Distortion]
    pano_to_texture: np.ndarray   # 4x4, rig frame -> homogeneous pixel coordinates


def _floats(block: dict, key: str, count: int, sensor_id) -> np.ndarray:
    if key not in block or block[key] is None:
        raise InvalidCalibration(f"missing '{key}'", sensor_id)
    try:
        arr = np.asarray(block[key], dtype=np.float64).ravel()
    except (TypeError, ValueError) as exc:
        raise InvalidCalibration(f"'{key}' is not numeric", sensor_id) from exc
    if arr.size != count:
        raise InvalidCalibration(f"'{key}' must have {count} elements, got {arr.size}", sensor_id)
    return arr


def _parse_distortion(block: dict, sensor_id) -> Distortion:
    if not isinstance(block, dict):
        raise InvalidCalibration("'distortion' must be a mapping", sensor_id)
    pps = _floats(block, "pps", 2, sensor_id)
    poly = _floats(block, "poly357", 3, sensor_id)
    limit = float(_floats(block, "limit", 1, sensor_id)[0])
    if block.get("l1l2") is not None:
        l1l2 = _floats(block, "l1l2", 2, sensor_id)
        etats = float(_floats(block, "etats", 1, sensor_id)[0])
        if l1l2.any() and etats == 0.0:
            raise InvalidCalibration("'etats' must be non-zero with an affine term", sensor_id)
    else:
        l1l2 = np.zeros(2, dtype=np.float64)
        etats = 0.0
    return Distortion(pps=pps, poly357=poly, limit2=limit * limit, l1l2=l1l2, etats=etats)


def parse_sensor(record: dict, convention: AttitudeConvention) -> Sensor:
    if not isinstance(record, dict):
        raise InvalidCalibration("record must be a mapping")
    sensor_id = record.get("id")

    rotation = _floats(record, "rotation", 9, sensor_id).reshape(3, 3)
    projection = _floats(record, "projection", 9, sensor_id).reshape(3, 3)
    size = _floats(record, "size", 2, sensor_id)
    if record.get("position") is not None:
        position = _floats(record, "position", 3, sensor_id)
    else:
        position = np.zeros(3, dtype=np.float64)

    distortion = None
    if record.get("distortion") is not None:
        distortion = _parse_distortion(record["distortion"], sensor_id)

    rig_to_texture = projection @ rotation @ rig_correction(convention).T
    pano_to_texture = mat4_from_mat3(rig_to_texture) @ mat4_translation(*(-position))

    return Sensor(
        id=sensor_id,
        rig_to_sensor=rotation,
        projection=projection,
        size=size,
        position=position,
        distortion=distortion,
        pano_to_texture=pano_to_texture,
    )


def parse_sensors(records, convention: AttitudeConvention) -> List[Sensor]:
    sensors = [parse_sensor(r, convention) for r in records]
    log.debug(f"[calib] Parsed {len(sensors)} sensors ({convention.value})")
    return sensors


def rig_uses_distortion(sensors) -> bool:
    # One flag for the whole rig: set as soon as any sensor carries distortion data.
    return any(s.distortion is not None for s in sensors)


def _radial_scale(rho2: np.ndarray, poly: np.ndarray) -> np.ndarray:
    return rho2 * (poly[0] + rho2 * (poly[1] + rho2 * poly[2]))


def _affine(ab: np.ndarray, l1l2: np.ndarray) -> np.ndarray:
    return np.column_stack((l1l2[0] * ab[:, 0] + l1l2[1] * ab[:, 1], l1l2[1] * ab[:, 0]))


def correct_distortion(points, distortion: Distortion) -> np.ndarray:
    """
    Map ideal pinhole pixel coordinates to pixel coordinates in the source image.

    Points outside the validity radius come back as NaN rows.
    """
    p = np.atleast_2d(np.asarray(points, dtype=np.float64))
    pps = distortion.pps
    poly = distortion.poly357

    if not distortion.has_affine:
        v = p - pps
        v2 = np.einsum("ij,ij->i", v, v)
        out = p + _radial_scale(v2, poly)[:, None] * v
        out[v2 > distortion.limit2] = np.nan
        return out

    etats = distortion.etats
    big_ab = (p - pps) / etats
    r = np.sqrt(np.einsum("ij,ij->i", big_ab, big_ab))
    lam = np.ones_like(r)
    nz = r > 0.0
    lam[nz] = np.arctan(r[nz]) / r[nz]
    ab = lam[:, None] * big_ab
    rho2 = np.einsum("ij,ij->i", ab, ab)
    r357 = (1.0 + _radial_scale(rho2, poly)) * etats
    out = pps + r357[:, None] * ab + _affine(ab, distortion.l1l2) * etats
    out[rho2 > distortion.limit2] = np.nan
    return out


def uncorrect_distortion(points, distortion: Distortion) -> np.ndarray:
    """Inverse of correct_distortion, solved numerically."""
    p = np.atleast_2d(np.asarray(points, dtype=np.float64))
    pps = distortion.pps
    poly = distortion.poly357

    if not distortion.has_affine:
        w = p - pps
        rw = np.sqrt(np.einsum("ij,ij->i", w, w))
        # Newton on r + a r^3 + b r^5 + c r^7 = |w|
        r = rw.copy()
        for _ in range(NEWTON_ITERATIONS):
            r2 = r * r
            g = r * (1.0 + _radial_scale(r2, poly)) - rw
            dg = 1.0 + r2 * (3.0 * poly[0] + r2 * (5.0 * poly[1] + r2 * 7.0 * poly[2]))
            step = g / dg
            r = r - step
            if np.all(np.abs(step) < NEWTON_TOLERANCE):
                break
        scale = np.ones_like(rw)
        nz = rw > 0.0
        scale[nz] = r[nz] / rw[nz]
        out = pps + scale[:, None] * w
        out[r * r > distortion.limit2] = np.nan
        return out

    etats = distortion.etats
    w = (p - pps) / etats
    l1, l2 = distortion.l1l2
    affine = np.array([[l1, l2], [l2, 0.0]])
    ab = w.copy()
    for _ in range(NEWTON_ITERATIONS):
        rho2 = np.einsum("ij,ij->i", ab, ab)
        s = 1.0 + _radial_scale(rho2, poly)
        ds = poly[0] + rho2 * (2.0 * poly[1] + rho2 * 3.0 * poly[2])
        f = s[:, None] * ab + ab @ affine.T - w
        jac = (
            s[:, None, None] * np.eye(2)
            + 2.0 * ds[:, None, None] * np.einsum("ni,nj->nij", ab, ab)
            + affine
        )
        step = np.linalg.solve(jac, f[..., None])[..., 0]
        ab = ab - step
        if np.all(np.abs(step) < NEWTON_TOLERANCE):
            break

    rho = np.sqrt(np.einsum("ij,ij->i", ab, ab))
    scale = np.ones_like(rho)
    nz = rho > 0.0
    scale[nz] = np.tan(rho[nz]) / rho[nz]
    out = pps + etats * scale[:, None] * ab
    out[(rho * rho > distortion.limit2) | (rho >= np.pi / 2)] = np.nan
    return out


def border_fade(points, size) -> np.ndarray:
    # Weight in [.., 1]: ramps from 0 at the image edge to 1 at BORDER_FADE inside it.
    p = np.atleast_2d(np.asarray(points, dtype=np.float64))
    s = np.asarray(size, dtype=np.float64)
    u = p[:, 0] / s[0]
    v = (s[1] - p[:, 1]) / s[1]
    edge = np.minimum(np.minimum(u, v), np.minimum(1.0 - u, 1.0 - v))
    return np.minimum(edge / BORDER_FADE, 1.0)
