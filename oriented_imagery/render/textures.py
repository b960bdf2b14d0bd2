import logging

import numpy as np
from OpenGL import GL

log = logging.getLogger(__name__)


class GLTexture:
    """RGBA8 texture holding one sensor image; dispose() frees the GPU storage."""

    def __init__(self, image: np.ndarray):
        pixels = np.ascontiguousarray(np.flipud(np.asarray(image, dtype=np.uint8)))
        if pixels.ndim != 3 or pixels.shape[2] != 4:
            raise ValueError(f"expected an (h, w, 4) RGBA image, got shape {pixels.shape}")
        self.height, self.width = pixels.shape[:2]

        self.tex_id = GL.glGenTextures(1)
        GL.glBindTexture(GL.GL_TEXTURE_2D, self.tex_id)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_MIN_FILTER, GL.GL_LINEAR)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_MAG_FILTER, GL.GL_LINEAR)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_WRAP_S, GL.GL_CLAMP_TO_EDGE)
        GL.glTexParameteri(GL.GL_TEXTURE_2D, GL.GL_TEXTURE_WRAP_T, GL.GL_CLAMP_TO_EDGE)
        GL.glPixelStorei(GL.GL_UNPACK_ALIGNMENT, 1)
        # Rows flipped so that v = 1 is the top image row, as the fragment program expects.
        GL.glTexImage2D(
            GL.GL_TEXTURE_2D,
            0,
            GL.GL_RGBA,
            self.width,
            self.height,
            0,
            GL.GL_RGBA,
            GL.GL_UNSIGNED_BYTE,
            pixels,
        )

    def dispose(self):
        if self.tex_id:
            GL.glDeleteTextures([self.tex_id])
            log.debug(f"[gl] Deleted texture {self.tex_id}")
            self.tex_id = 0
