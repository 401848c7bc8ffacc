"""
LOAM scan-registration front end.

Turns a spinning-lidar point stream plus inertial samples into motion
compensated sweeps and four bounded feature subsets (sharp / less-sharp
corners, flat / less-flat surfaces) for a downstream odometry stage.

Subpackages:
- common/: constants, parameter models, geometry, OpReport
- frontend/: inertial path, sweep accumulation, sensor transform, cloud codec
- backend/: sweep operators, pipeline, ROS 2 node, visualization
"""

__version__ = "0.1.0"
