import numpy as np


def make_inside_sphere(lat_steps=32, lon_steps=32, radius=5.0):
    """
    Sphere centred on the station that the sensor images are projected onto.

    Returns (vertices (n, 3) float32, triangle indices uint32). Triangles are
    wound to face the centre.
    """
    lat = (0.5 - np.arange(lat_steps + 1) / lat_steps) * np.pi
    lon = np.arange(lon_steps + 1) / lon_steps * 2.0 * np.pi
    lat, lon = np.meshgrid(lat, lon, indexing="ij")

    verts = radius * np.stack(
        (np.cos(lat) * np.sin(lon), np.sin(lat), np.cos(lat) * np.cos(lon)),
        axis=-1,
    ).reshape(-1, 3)

    row = lon_steps + 1
    i, j = np.meshgrid(np.arange(lat_steps), np.arange(lon_steps), indexing="ij")
    a = (i * row + j).ravel()
    b = a + row
    c = b + 1
    d = a + 1
    idx = np.stack((a, c, b, a, d, c), axis=-1).ravel()

    return verts.astype(np.float32), idx.astype(np.uint32)
