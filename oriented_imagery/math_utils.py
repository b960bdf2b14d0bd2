import math
import numpy as np

UP_AXIS = np.array([0.0, 1.0, 0.0], dtype=np.float64)


def mat4_perspective(fovy_deg: float, aspect: float, znear: float, zfar: float) -> np.ndarray:
    fovy = math.radians(fovy_deg)
    f = 1.0 / math.tan(fovy / 2.0)
    m = np.zeros((4, 4), dtype=np.float32)
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (zfar + znear) / (znear - zfar)
    m[2, 3] = (2.0 * zfar * znear) / (znear - zfar)
    m[3, 2] = -1.0
    return m


def mat4_from_yaw_pitch_roll(yaw_deg: float, pitch_deg: float, roll_deg: float) -> np.ndarray:
    yaw = math.radians(yaw_deg)
    pitch = math.radians(pitch_deg)
    roll = math.radians(roll_deg)

    cy, sy = math.cos(yaw), math.sin(yaw)
    cp, sp = math.cos(pitch), math.sin(pitch)
    cr, sr = math.cos(roll), math.sin(roll)

    Ry = np.array([
        [ cy, 0.0, sy, 0.0],
        [0.0, 1.0, 0.0, 0.0],
        [-sy, 0.0, cy, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ], dtype=np.float64)

    Rx = np.array([
        [1.0, 0.0, 0.0, 0.0],
        [0.0,  cp, -sp, 0.0],
        [0.0,  sp,  cp, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ], dtype=np.float64)

    Rz = np.array([
        [ cr, -sr, 0.0, 0.0],
        [ sr,  cr, 0.0, 0.0],
        [0.0, 0.0, 1.0, 0.0],
        [0.0, 0.0, 0.0, 1.0],
    ], dtype=np.float64)

    # Camera-to-parent rotation: yaw about +Y, then pitch, then roll.
    return Ry @ Rx @ Rz


def mat4_translation(x: float, y: float, z: float) -> np.ndarray:
    m = np.eye(4, dtype=np.float64)
    m[0, 3] = x
    m[1, 3] = y
    m[2, 3] = z
    return m


def mat4_from_mat3(m3: np.ndarray) -> np.ndarray:
    m = np.eye(4, dtype=np.float64)
    m[:3, :3] = m3
    return m


def mat4_rigid_inverse(m: np.ndarray) -> np.ndarray:
    # Valid only for rotation + translation matrices.
    r_t = m[:3, :3].T
    out = np.eye(4, dtype=np.float64)
    out[:3, :3] = r_t
    out[:3, 3] = -r_t @ m[:3, 3]
    return out


def normalize(v: np.ndarray) -> np.ndarray:
    n = np.linalg.norm(v)
    if n < 1e-300:
        return v
    return v / n


def look_at_rotation(eye: np.ndarray, target: np.ndarray, up: np.ndarray = UP_AXIS) -> np.ndarray:
    # Object orientation whose +Z axis points from eye towards target (columns x, y, z).
    z = np.asarray(target, dtype=np.float64) - np.asarray(eye, dtype=np.float64)
    if float(z @ z) == 0.0:
        z = np.array([0.0, 0.0, 1.0])
    z = normalize(z)

    x = np.cross(up, z)
    if float(x @ x) == 0.0:
        # up and z are parallel: nudge z off the up axis
        if abs(up[2]) == 1.0:
            z = normalize(z + np.array([1e-4, 0.0, 0.0]))
        else:
            z = normalize(z + np.array([0.0, 0.0, 1e-4]))
        x = np.cross(up, z)
    x = normalize(x)
    y = np.cross(z, x)

    return np.column_stack((x, y, z))


def transform_points(m: np.ndarray, points: np.ndarray) -> np.ndarray:
    pts = np.atleast_2d(np.asarray(points, dtype=np.float64))
    homo = np.hstack((pts, np.ones((pts.shape[0], 1))))
    out = homo @ m.T
    return out[:, :3] / out[:, 3:4]
