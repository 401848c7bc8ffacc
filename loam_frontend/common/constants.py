"""
LOAM front-end constants only.

=============================================================================
CONVENTION QUICK REFERENCE
=============================================================================

FRAMES:
  Lidar and inertial data use REP-103 axes: x forward, y left, z up.
  World frame is Z-UP; gravity points DOWN.

ORIENTATION:
  (roll, pitch, yaw) with R = Rz(yaw) @ Ry(pitch) @ Rx(roll)
  Quaternions are [x, y, z, w] (ROS / scipy ordering).

GRAVITY COMPENSATION (body frame):
  a_lin = a_meas - g * [-sin(pitch), sin(roll)cos(pitch), cos(roll)cos(pitch)]

POINT PACKING:
  intensity = ring + relative_time / scan_period
=============================================================================
"""

# =============================================================================
# REGISTRATION DEFAULTS
# Options validated by common.param_models.RegistrationParams
# =============================================================================

SCAN_PERIOD_DEFAULT = 0.1  # seconds per sweep (10 Hz spinning lidar)
IMU_HISTORY_SIZE_DEFAULT = 200  # ring buffer capacity (1 s at 200 Hz)
FEATURE_REGIONS_DEFAULT = 6  # angular regions per ring
CURVATURE_REGION_DEFAULT = 5  # +/- neighbours in the smoothness window
MAX_CORNER_SHARP_DEFAULT = 2
MAX_CORNER_LESS_SHARP_FACTOR = 10  # less-sharp cap = factor * sharp cap unless given
MAX_CORNER_LESS_SHARP_UNSET = 0  # node parameter value: scale the less-sharp cap with the sharp cap
MAX_SURFACE_FLAT_DEFAULT = 4
SURFACE_CURVATURE_THRESHOLD_DEFAULT = 0.1
LESS_FLAT_FILTER_SIZE_DEFAULT = 0.2  # voxel leaf (m)

# Lower bounds of the float options (whole config rejected below these)
SURFACE_CURVATURE_THRESHOLD_MIN = 0.001
LESS_FLAT_FILTER_SIZE_MIN = 0.001

N_SCAN_RINGS_DEFAULT = 16  # VLP-16

# =============================================================================
# RELIABILITY TESTS
# =============================================================================

# Occlusion boundary: squared distance to next point (m^2) that triggers the test,
# and the depth-normalised distance below which the far side is marked unreliable.
OCCLUSION_SQ_DISTANCE_DEFAULT = 0.1
OCCLUSION_WEIGHTED_DISTANCE_DEFAULT = 0.1

# Beam-parallel surface: both neighbour gaps (squared) larger than this fraction
# of the squared range.
PARALLEL_BEAM_RATIO_DEFAULT = 0.0002

# =============================================================================
# INERTIAL
# =============================================================================

GRAVITY_DEFAULT = 9.81  # m/s^2

# Timestamps closer than this are treated as equal for bracket lookup (s).
TIME_EPS = 1e-9

# =============================================================================
# SENSOR TRANSFORM RESOLUTION
# =============================================================================

TRANSFORM_LOOKUP_RETRIES_DEFAULT = 10
TRANSFORM_LOOKUP_BACKOFF_SEC_DEFAULT = 1.0

LIDAR_FRAME_DEFAULT = "/camera"
IMU_FRAME_DEFAULT = "/imu"
IMU_INPUT_TOPIC_DEFAULT = "/imu/data"

# =============================================================================
# OUTPUT TOPICS
# =============================================================================

TOPIC_LASER_CLOUD = "velodyne_cloud_2"
TOPIC_CORNER_SHARP = "laser_cloud_sharp"
TOPIC_CORNER_LESS_SHARP = "laser_cloud_less_sharp"
TOPIC_SURFACE_FLAT = "laser_cloud_flat"
TOPIC_SURFACE_LESS_FLAT = "laser_cloud_less_flat"
TOPIC_IMU_TRANS = "imu_trans"
POINTS_INPUT_TOPIC_DEFAULT = "/velodyne_points"

# JIT kernels are compiled for point counts padded up to a multiple of this
# so sweeps of slightly different sizes share one compiled program.
JIT_POINT_BUCKET = 4096

# Node-only parameters that share the registration YAML but are not
# RegistrationParams options.
NODE_PARAMETER_KEYS = (
    "pointsInputTopic",
    "sweep_per_message",
    "use_rerun",
    "rerun_spawn",
    "rerun_recording_path",
)
