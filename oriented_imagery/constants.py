# Window Configuration
WINDOW_WIDTH = 1280
WINDOW_HEIGHT = 720
WINDOW_TITLE = "Oriented Imagery Viewer"

# Reference systems
CRS_GEOCENTRIC = "EPSG:4978"
CRS_GEOGRAPHIC = "EPSG:4326"

# Attitude conventions (layer `orientation_type`)
CONVENTION_STEREOPOLIS2 = "Stereopolis2"
CONVENTION_MICMAC = "MicMac"

# Compositing
BORDER_FADE = 0.02          # fade margin, fraction of the sensor's normalized extent
NO_DISTORTION_LIMIT2 = 1e30  # validity radius^2 used for undistorted sensors of a distorted rig

# Projection surface
DEFAULT_SPHERE_RADIUS = 5.0
DEFAULT_SPHERE_STEPS = 32

# Viewer Defaults
DEFAULT_FOV = 70.0
Z_NEAR = 0.1
Z_FAR = 1000.0

# Controls
KEY_LOOK_STEP = 3.0
KEY_MOVE_STEP = 0.5
MOUSE_SENSITIVITY = 0.12
SCROLL_SENSITIVITY = 2.0
