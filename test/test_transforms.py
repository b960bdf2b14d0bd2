import math

import numpy as np
import pytest

from conftest import sensor_record
from oriented_imagery.calibration import parse_sensors
from oriented_imagery.math_utils import transform_points
from oriented_imagery.registry import CaptureStation
from oriented_imagery.transforms import (
    AttitudeConvention,
    build_station_transforms,
    micmac_rotation,
    station_local_to_world,
    station_rotation,
    stereopolis2_rotation,
    update_sensor_matrices,
    world_to_station_local,
)

# Somewhere around Paris, geocentric.
PARIS = np.array([4201000.0, 177000.0, 4779000.0])


def _rx(deg):
    c, s = math.cos(math.radians(deg)), math.sin(math.radians(deg))
    return np.array([[1, 0, 0], [0, c, -s], [0, s, c]])


def _ry(deg):
    c, s = math.cos(math.radians(deg)), math.sin(math.radians(deg))
    return np.array([[c, 0, s], [0, 1, 0], [-s, 0, c]])


def _rz(deg):
    c, s = math.cos(math.radians(deg)), math.sin(math.radians(deg))
    return np.array([[c, -s, 0], [s, c, 0], [0, 0, 1]])


def _assert_rotation(r):
    np.testing.assert_allclose(r @ r.T, np.eye(3), atol=1e-12)
    assert np.linalg.det(r) == pytest.approx(1.0)


def test_station_is_local_origin():
    w2l = world_to_station_local(PARIS)
    np.testing.assert_allclose(transform_points(w2l, PARIS)[0], 0.0, atol=1e-6)
    np.testing.assert_allclose(transform_points(station_local_to_world(PARIS), [0, 0, 0])[0], PARIS, atol=1e-6)
    _assert_rotation(w2l[:3, :3])


def test_local_up_is_radial():
    w2l = world_to_station_local(PARIS)
    up = w2l[:3, :3] @ (PARIS / np.linalg.norm(PARIS))
    np.testing.assert_allclose(up, (0.0, 0.0, 1.0), atol=1e-12)


def test_local_frame_on_pole_axis_is_finite():
    w2l = world_to_station_local([0.0, 6356752.0, 0.0])
    assert np.all(np.isfinite(w2l))
    _assert_rotation(w2l[:3, :3])


def test_stereopolis2_is_zxy_euler():
    roll, pitch, heading = 12.0, -7.0, 135.0
    expected = _rz(heading) @ _rx(pitch) @ _ry(roll)
    np.testing.assert_allclose(stereopolis2_rotation(roll, pitch, heading), expected, atol=1e-12)


def test_micmac_reference_values():
    np.testing.assert_allclose(micmac_rotation(0, 0, 0), np.diag([1.0, -1.0, -1.0]), atol=1e-12)
    np.testing.assert_allclose(
        micmac_rotation(90, 0, 0),
        [[1.0, 0.0, 0.0], [0.0, 0.0, -1.0], [0.0, 1.0, 0.0]],
        atol=1e-12,
    )


@pytest.mark.parametrize("convention", list(AttitudeConvention))
def test_station_rotations_are_orthonormal(convention):
    for angles in [(0, 0, 0), (3.5, -1.2, 271.0), (45, 30, -60)]:
        _assert_rotation(station_rotation(convention, *angles))


def test_conventions_differ():
    a = station_rotation(AttitudeConvention.MICMAC, 10, 20, 30)
    b = station_rotation(AttitudeConvention.STEREOPOLIS2, 10, 20, 30)
    assert not np.allclose(a, b)


def test_convention_parse():
    assert AttitudeConvention.parse("micmac") is AttitudeConvention.MICMAC
    assert AttitudeConvention.parse("STEREOPOLIS2") is AttitudeConvention.STEREOPOLIS2
    assert AttitudeConvention.parse(AttitudeConvention.MICMAC) is AttitudeConvention.MICMAC
    with pytest.raises(ValueError):
        AttitudeConvention.parse("euler")


def test_sensor_matrices_update_in_place():
    station = CaptureStation(0, "s0", tuple(PARIS), 1.0, 2.0, 3.0)
    sensors = parse_sensors([sensor_record("a"), sensor_record("b", position=[0.1, 0.0, 0.0])],
                            AttitudeConvention.STEREOPOLIS2)
    tr = build_station_transforms(station, sensors, AttitudeConvention.STEREOPOLIS2)
    assert tr.local_to_texture.shape == (2, 4, 4)

    cam = station_local_to_world(PARIS + 1.0)
    out = np.zeros((2, 4, 4), dtype=np.float32)
    scratch = tr.camera_to_local
    res = update_sensor_matrices(tr, cam, out)
    assert res is out
    assert tr.camera_to_local is scratch
    np.testing.assert_allclose(scratch, tr.world_to_local @ cam, atol=1e-6)
    assert out.dtype == np.float32
    for i, s in enumerate(sensors):
        expected = s.pano_to_texture @ tr.local_to_pano @ tr.world_to_local @ cam
        np.testing.assert_allclose(out[i], expected, rtol=1e-5, atol=1e-3)
