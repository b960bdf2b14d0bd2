import ctypes
from OpenGL import GL
from oriented_imagery.geometry import make_inside_sphere


class SphereMesh:
    def __init__(self, lat_steps: int, lon_steps: int, radius: float):
        verts, indices = make_inside_sphere(lat_steps=lat_steps, lon_steps=lon_steps, radius=radius)
        self.index_count = len(indices)

        self.vbo_pos = GL.glGenBuffers(1)
        self.ebo = GL.glGenBuffers(1)

        GL.glBindBuffer(GL.GL_ARRAY_BUFFER, self.vbo_pos)
        GL.glBufferData(GL.GL_ARRAY_BUFFER, verts.nbytes, verts, GL.GL_STATIC_DRAW)

        GL.glBindBuffer(GL.GL_ELEMENT_ARRAY_BUFFER, self.ebo)
        GL.glBufferData(GL.GL_ELEMENT_ARRAY_BUFFER, indices.nbytes, indices, GL.GL_STATIC_DRAW)

    def bind(self, loc_pos: int):
        GL.glBindBuffer(GL.GL_ARRAY_BUFFER, self.vbo_pos)
        GL.glEnableVertexAttribArray(loc_pos)
        GL.glVertexAttribPointer(loc_pos, 3, GL.GL_FLOAT, GL.GL_FALSE, 0, ctypes.c_void_p(0))

        GL.glBindBuffer(GL.GL_ELEMENT_ARRAY_BUFFER, self.ebo)

    def draw(self):
        GL.glDrawElements(GL.GL_TRIANGLES, self.index_count, GL.GL_UNSIGNED_INT, None)

    def dispose(self):
        GL.glDeleteBuffers(2, [self.vbo_pos, self.ebo])
