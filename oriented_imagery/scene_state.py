from dataclasses import dataclass, field

import numpy as np

from oriented_imagery.constants import DEFAULT_FOV
from oriented_imagery.math_utils import mat4_from_mat3, mat4_from_yaw_pitch_roll, mat4_rigid_inverse
from oriented_imagery.transforms import station_local_to_world

# GL camera axes expressed in the local tangent frame: looks along local +Y, up is local +Z.
CAMERA_TO_LOCAL = np.array([
    [1.0, 0.0,  0.0],
    [0.0, 0.0, -1.0],
    [0.0, 1.0,  0.0],
], dtype=np.float64)


@dataclass
class SceneState:
    position: np.ndarray = field(default_factory=lambda: np.zeros(3, dtype=np.float64))
    yaw: float = 0.0
    pitch: float = 0.0
    fov: float = DEFAULT_FOV

    def reset(self, default_fov: float = DEFAULT_FOV):
        self.yaw = 0.0
        self.pitch = 0.0
        self.fov = default_fov

    def move_to(self, position):
        self.position = np.asarray(position, dtype=np.float64).reshape(3).copy()

    def look(self, dyaw: float, dpitch: float):
        self.yaw += dyaw
        self.pitch = max(-89.0, min(89.0, self.pitch + dpitch))

    def move_forward(self, step: float):
        forward = self.camera_to_world()[:3, :3] @ np.array([0.0, 0.0, -1.0])
        self.position = self.position + forward * step

    def camera_to_world(self) -> np.ndarray:
        return (
            station_local_to_world(self.position)
            @ mat4_from_mat3(CAMERA_TO_LOCAL)
            @ mat4_from_yaw_pitch_roll(self.yaw, self.pitch, 0.0)
        )

    def view_matrix(self) -> np.ndarray:
        return mat4_rigid_inverse(self.camera_to_world())
