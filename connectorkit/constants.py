SCHEMA_VERSION = 1

# Side classification tolerance and the larger corner-nudge distance.
EPSILON = 0.000001
VERTEX_EPSILON = 0.0001

# Below this size a rectangle is too small to rotate a point around.
MIN_ROTATION_EXTENT = 0.0000005

DEFAULT_RELATIVE_X = 0.5
DEFAULT_RELATIVE_Y = 0.5

RELATIVE_X_KEY = "relativeX"
RELATIVE_Y_KEY = "relativeY"
START_STRATEGY_KEY = "start_connector_strategy"
END_STRATEGY_KEY = "end_connector_strategy"

CURVED_LINER = "curved"
ELBOW_LINER = "elbow"
SELF_CONNECTION_LINER = "self-connection"

SEGMENT_HIT_TOLERANCE = 2.0

FIGURE_KINDS = ("rectangle", "ellipse", "polygon", "group")
DEFAULT_FIGURE_WIDTH = 100.0
DEFAULT_FIGURE_HEIGHT = 60.0
