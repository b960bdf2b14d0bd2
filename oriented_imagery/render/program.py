import numpy as np
from OpenGL import GL

from oriented_imagery.shaders import (
    A_POS,
    U_DISTORTION,
    U_L1L2,
    U_MODEL_VIEW,
    U_PPS,
    U_PROJECTION,
    U_SENSOR_MVP,
    U_SIZE,
    U_TEXTURE,
    ProgramSource,
)


def compile_shader(src: str, shader_type):
    sh = GL.glCreateShader(shader_type)
    GL.glShaderSource(sh, src)
    GL.glCompileShader(sh)
    ok = GL.glGetShaderiv(sh, GL.GL_COMPILE_STATUS)
    if not ok:
        log = GL.glGetShaderInfoLog(sh).decode("utf-8", "replace")
        raise RuntimeError(f"Shader compile failed:\n{log}")
    return sh


def link_program(vs, fs):
    prog = GL.glCreateProgram()
    GL.glAttachShader(prog, vs)
    GL.glAttachShader(prog, fs)
    GL.glLinkProgram(prog)
    ok = GL.glGetProgramiv(prog, GL.GL_LINK_STATUS)
    if not ok:
        log = GL.glGetProgramInfoLog(prog).decode("utf-8", "replace")
        raise RuntimeError(f"Program link failed:\n{log}")
    return prog


class CompositeProgram:
    """GL program built from generated sources, plus its uniform upload."""

    def __init__(self, source: ProgramSource):
        self.source = source
        vs = compile_shader(source.vertex_source, GL.GL_VERTEX_SHADER)
        fs = compile_shader(source.fragment_source, GL.GL_FRAGMENT_SHADER)
        self.prog = link_program(vs, fs)
        GL.glDeleteShader(vs)
        GL.glDeleteShader(fs)

        names = [U_MODEL_VIEW, U_PROJECTION, U_SENSOR_MVP, U_TEXTURE, U_SIZE]
        if source.uses_distortion:
            names += [U_PPS, U_DISTORTION, U_L1L2]
        self.locs = {name: GL.glGetUniformLocation(self.prog, name) for name in names}
        self.locs[A_POS] = GL.glGetAttribLocation(self.prog, A_POS)

    def draw(self, mesh, model_view: np.ndarray, projection: np.ndarray, uniforms: dict):
        n = self.source.sensor_count
        GL.glUseProgram(self.prog)
        GL.glUniformMatrix4fv(self.locs[U_MODEL_VIEW], 1, GL.GL_TRUE, np.asarray(model_view, dtype=np.float32))
        GL.glUniformMatrix4fv(self.locs[U_PROJECTION], 1, GL.GL_TRUE, np.asarray(projection, dtype=np.float32))
        GL.glUniformMatrix4fv(self.locs[U_SENSOR_MVP], n, GL.GL_TRUE, uniforms[U_SENSOR_MVP])
        GL.glUniform2fv(self.locs[U_SIZE], n, uniforms[U_SIZE])
        if self.source.uses_distortion:
            GL.glUniform2fv(self.locs[U_PPS], n, uniforms[U_PPS])
            GL.glUniform4fv(self.locs[U_DISTORTION], n, uniforms[U_DISTORTION])
            GL.glUniform3fv(self.locs[U_L1L2], n, uniforms[U_L1L2])

        for unit, tex in enumerate(uniforms[U_TEXTURE]):
            GL.glActiveTexture(GL.GL_TEXTURE0 + unit)
            GL.glBindTexture(GL.GL_TEXTURE_2D, tex.tex_id if tex is not None else 0)
        GL.glUniform1iv(self.locs[U_TEXTURE], n, np.arange(n, dtype=np.int32))

        mesh.bind(self.locs[A_POS])
        mesh.draw()
        GL.glActiveTexture(GL.GL_TEXTURE0)

    def dispose(self):
        GL.glDeleteProgram(self.prog)
