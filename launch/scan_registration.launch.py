"""
Scan registration launch file.

Starts scan_registration_node with config/scan_registration.yaml. Topic and
Rerun options can be overridden from the command line.
"""

import os

from launch import LaunchDescription
from launch.actions import DeclareLaunchArgument
from launch.substitutions import LaunchConfiguration
from launch_ros.actions import Node
from launch_ros.parameter_descriptions import ParameterValue

from ament_index_python.packages import get_package_share_directory


def generate_launch_description():
    """Generate launch description for the scan registration front end."""
    pkg_share = get_package_share_directory("loam_frontend")
    default_config = os.path.join(pkg_share, "config", "scan_registration.yaml")

    config_arg = DeclareLaunchArgument(
        "config",
        default_value=default_config,
        description="Parameter YAML for scan_registration_node",
    )
    points_topic_arg = DeclareLaunchArgument(
        "points_topic",
        default_value="/velodyne_points",
        description="Raw PointCloud2 input",
    )
    imu_topic_arg = DeclareLaunchArgument(
        "imu_topic",
        default_value="/imu/data",
        description="sensor_msgs/Imu input",
    )
    use_rerun_arg = DeclareLaunchArgument(
        "use_rerun",
        default_value="false",
        description="Log sweeps to Rerun",
    )

    node = Node(
        package="loam_frontend",
        executable="scan_registration_node",
        name="scan_registration",
        output="screen",
        parameters=[
            LaunchConfiguration("config"),
            {
                "pointsInputTopic": LaunchConfiguration("points_topic"),
                "imuInputTopic": LaunchConfiguration("imu_topic"),
                "use_rerun": ParameterValue(LaunchConfiguration("use_rerun"), value_type=bool),
            },
        ],
    )

    return LaunchDescription([
        config_arg,
        points_topic_arg,
        imu_topic_arg,
        use_rerun_arg,
        node,
    ])
