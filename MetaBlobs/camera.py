import math

import numpy as np


def look_at(eye, target, up) -> np.ndarray:
    """Right-handed view matrix looking from ``eye`` toward ``target``."""
    eye = np.asarray(eye, dtype=np.float32)
    target = np.asarray(target, dtype=np.float32)
    up = np.asarray(up, dtype=np.float32)
    f = target - eye
    f = f / (np.linalg.norm(f) + 1e-12)
    s = np.cross(f, up)
    s = s / (np.linalg.norm(s) + 1e-12)
    u = np.cross(s, f)
    m = np.identity(4, dtype=np.float32)
    m[0, 0:3] = s
    m[1, 0:3] = u
    m[2, 0:3] = -f
    m[:3, 3] = -np.array([np.dot(s, eye), np.dot(u, eye), np.dot(-f, eye)])
    return m


def perspective(fov: float, aspect: float, near: float, far: float) -> np.ndarray:
    """Perspective projection, ``fov`` is the vertical field of view in radians."""
    f = 1.0 / math.tan(fov * 0.5)
    m = np.zeros((4, 4), dtype=np.float32)
    m[0, 0] = f / aspect
    m[1, 1] = f
    m[2, 2] = (far + near) / (near - far)
    m[2, 3] = (2 * far * near) / (near - far)
    m[3, 2] = -1.0
    return m


def translation(offset) -> np.ndarray:
    m = np.identity(4, dtype=np.float32)
    m[:3, 3] = np.asarray(offset, dtype=np.float32)
    return m


class Camera:
    """Orbit camera around a target point.

    ``yaw``, ``pitch`` and ``zoom`` place the eye on a sphere around
    ``target``; input deltas are applied with :meth:`apply_input`.
    """

    def __init__(
        self,
        fov: float = math.pi / 4,
        aspect_ratio: float = 1.0,
        near: float = 1.0,
        far: float = 2000.0,
        yaw: float = 0.3,
        pitch: float = -0.5,
        zoom: float = 500.0,
        min_zoom: float = 200.0,
        target=(0.0, 75.0, 0.0),
    ):
        self.fov = fov
        self.aspect_ratio = aspect_ratio
        self.near = near
        self.far = far
        self.yaw = yaw
        self.pitch = pitch
        self.min_zoom = min_zoom
        self.zoom = max(min_zoom, zoom)
        self.target = np.asarray(target, dtype=np.float32)
        self.up = np.array([0.0, 1.0, 0.0], dtype=np.float32)
        self.position = np.zeros(3, dtype=np.float32)
        self.orbit(self.yaw, self.pitch, self.zoom)

    def orbit(self, yaw: float, pitch: float, zoom: float):
        """Place the eye at distance ``zoom`` from the target.

        The offset ``(0, 0, zoom)`` is pitched about x, then yawed about y.
        """
        self.yaw = yaw
        self.pitch = pitch
        self.zoom = zoom
        offset = zoom * np.array(
            [
                math.cos(pitch) * math.sin(yaw),
                -math.sin(pitch),
                math.cos(pitch) * math.cos(yaw),
            ],
            dtype=np.float32,
        )
        self.position = self.target + offset

    def apply_input(self, dyaw: float = 0.0, dpitch: float = 0.0, dzoom: float = 0.0):
        zoom = max(self.min_zoom, self.zoom + dzoom)
        self.orbit(self.yaw + dyaw, self.pitch + dpitch, zoom)

    @property
    def view(self) -> np.ndarray:
        return look_at(self.position, self.target, self.up)

    @property
    def projection(self) -> np.ndarray:
        return perspective(self.fov, self.aspect_ratio, self.near, self.far)
