import asyncio
import logging

import glfw
from OpenGL import GL

from oriented_imagery.config import LayerConfig
from oriented_imagery.constants import WINDOW_HEIGHT, WINDOW_TITLE, WINDOW_WIDTH, Z_FAR, Z_NEAR
from oriented_imagery.input_handler import InputHandler
from oriented_imagery.layer import load_layer
from oriented_imagery.math_utils import mat4_perspective, mat4_translation
from oriented_imagery.render.mesh import SphereMesh
from oriented_imagery.render.program import CompositeProgram
from oriented_imagery.render.textures import GLTexture
from oriented_imagery.scene_state import SceneState

log = logging.getLogger(__name__)


class Viewer:
    """glfw window walking through the stations of one oriented imagery layer."""

    def __init__(self, config: LayerConfig, fullscreen: bool = False):
        self.config = config
        self.fullscreen = fullscreen or config.viewer.fullscreen
        self.default_fov = config.viewer.fov
        self.scene = SceneState(fov=self.default_fov)
        self.window = None
        self.layer = None
        self.program = None
        self.sphere = None
        self._dirty = True

    def mark_dirty(self):
        self._dirty = True

    def _init_window(self):
        if not glfw.init():
            raise RuntimeError("glfw.init() failed")

        glfw.window_hint(glfw.CONTEXT_VERSION_MAJOR, 2)
        glfw.window_hint(glfw.CONTEXT_VERSION_MINOR, 1)

        monitor = glfw.get_primary_monitor() if self.fullscreen else None
        mode = glfw.get_video_mode(monitor) if monitor else None

        width = mode.size.width if mode else WINDOW_WIDTH
        height = mode.size.height if mode else WINDOW_HEIGHT

        self.window = glfw.create_window(width, height, WINDOW_TITLE, monitor, None)
        if not self.window:
            glfw.terminate()
            raise RuntimeError("Failed to create window")

        glfw.make_context_current(self.window)
        glfw.swap_interval(1)

    def _init_input(self):
        self.input_handler = InputHandler(self)
        glfw.set_key_callback(self.window, self.input_handler.on_key)
        glfw.set_mouse_button_callback(self.window, self.input_handler.on_mouse)
        glfw.set_cursor_pos_callback(self.window, self.input_handler.on_cursor)
        glfw.set_scroll_callback(self.window, self.input_handler.on_scroll)

    async def _init_layer(self):
        # Textures are created on this thread, where the GL context is current.
        self.layer = await load_layer(self.config, texture_factory=GLTexture)
        self.program = CompositeProgram(self.layer.composite_program())
        self.sphere = SphereMesh(
            lat_steps=self.config.sphere_lat_steps,
            lon_steps=self.config.sphere_lon_steps,
            radius=self.config.sphere_radius,
        )
        count = len(self.layer.state.registry)
        if count:
            start = min(self.config.viewer.start_station, count - 1)
            self.scene.move_to(self.layer.station_position(start))
        else:
            log.warning("[viewer] Layer has no station; nothing will be composited")

    async def run(self):
        self._init_window()
        try:
            await self._init_layer()
            self._init_input()
            while not glfw.window_should_close(self.window):
                glfw.poll_events()
                self._update()
                self._render()
                glfw.swap_buffers(self.window)
                # let image fetches and texture binding progress
                await asyncio.sleep(0)
        finally:
            self._shutdown()

    def _update(self):
        if not self._dirty:
            return
        self.layer.on_viewpoint_changed(self.scene.camera_to_world())
        self._dirty = False

    def _render(self):
        fb_w, fb_h = glfw.get_framebuffer_size(self.window)
        GL.glViewport(0, 0, fb_w, fb_h)
        GL.glClearColor(0.0, 0.0, 0.0, 1.0)
        GL.glClear(GL.GL_COLOR_BUFFER_BIT | GL.GL_DEPTH_BUFFER_BIT)

        uniforms = self.layer.uniforms()
        if uniforms is None:
            return

        aspect = fb_w / float(fb_h if fb_h else 1)
        proj = mat4_perspective(self.scene.fov, aspect, Z_NEAR, Z_FAR)
        station = self.layer.station_position(self.layer.displayed_station)
        model_view = self.scene.view_matrix() @ mat4_translation(*station)

        GL.glDisable(GL.GL_DEPTH_TEST)
        GL.glDisable(GL.GL_CULL_FACE)
        GL.glEnable(GL.GL_BLEND)
        GL.glBlendFunc(GL.GL_SRC_ALPHA, GL.GL_ONE_MINUS_SRC_ALPHA)
        self.program.draw(self.sphere, model_view, proj, uniforms)
        GL.glDisable(GL.GL_BLEND)

    def _shutdown(self):
        if self.layer is not None:
            self.layer.release()
        if self.sphere is not None:
            self.sphere.dispose()
        if self.program is not None:
            self.program.dispose()
        glfw.terminate()
