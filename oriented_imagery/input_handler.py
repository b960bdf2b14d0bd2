import logging

import glfw

from oriented_imagery.constants import KEY_LOOK_STEP, KEY_MOVE_STEP, MOUSE_SENSITIVITY, SCROLL_SENSITIVITY
from oriented_imagery.exceptions import NoStationsAvailable

log = logging.getLogger(__name__)


class InputHandler:
    def __init__(self, viewer):
        self.viewer = viewer
        self.dragging = False
        self.last_x, self.last_y = 0.0, 0.0

    def on_key(self, win, key, scancode, action, mods):
        if action not in (glfw.PRESS, glfw.REPEAT): return
        scene = self.viewer.scene

        if key == glfw.KEY_ESCAPE:
            glfw.set_window_should_close(win, True)
            return

        if key == glfw.KEY_N:
            try:
                scene.move_to(self.viewer.layer.next_station_position())
            except NoStationsAvailable:
                log.info("[viewer] No station to jump to")
                return
            log.info(f"[viewer] Moving past station {self.viewer.layer.current_station_index()}")
        elif key == glfw.KEY_LEFT:
            scene.look(KEY_LOOK_STEP, 0.0)
        elif key == glfw.KEY_RIGHT:
            scene.look(-KEY_LOOK_STEP, 0.0)
        elif key == glfw.KEY_UP:
            scene.look(0.0, KEY_LOOK_STEP)
        elif key == glfw.KEY_DOWN:
            scene.look(0.0, -KEY_LOOK_STEP)
        elif key == glfw.KEY_W:
            scene.move_forward(KEY_MOVE_STEP)
        elif key == glfw.KEY_S:
            scene.move_forward(-KEY_MOVE_STEP)
        elif key == glfw.KEY_R:
            scene.reset(default_fov=self.viewer.default_fov)
        else:
            return
        self.viewer.mark_dirty()

    def on_mouse(self, win, button, action, mods):
        if button == glfw.MOUSE_BUTTON_LEFT:
            if action == glfw.PRESS:
                self.dragging = True
                self.last_x, self.last_y = glfw.get_cursor_pos(win)
            elif action == glfw.RELEASE:
                self.dragging = False

    def on_cursor(self, win, x, y):
        if not self.dragging: return
        dx = x - self.last_x
        dy = y - self.last_y
        self.last_x, self.last_y = x, y

        self.viewer.scene.look(dx * MOUSE_SENSITIVITY, dy * MOUSE_SENSITIVITY)
        self.viewer.mark_dirty()

    def on_scroll(self, win, xoff, yoff):
        scene = self.viewer.scene
        scene.fov = max(20.0, min(120.0, scene.fov - yoff * SCROLL_SENSITIVITY))
