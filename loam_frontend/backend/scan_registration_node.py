"""
LOAM scan-registration node.

Subscribes to raw lidar clouds and inertial samples, runs the
ScanRegistrationPipeline and publishes, per sweep:
  velodyne_cloud_2        compensated full cloud (intensity = ring + rel_time / scan_period)
  laser_cloud_sharp       sharp corner points
  laser_cloud_less_sharp  less-sharp corner points
  laser_cloud_flat        flat surface points
  laser_cloud_less_flat   less-flat surface points
  imu_trans               4 points: start rpy, end rpy, position delta, velocity delta
  scan_registration/report  OpReport JSON of the sweep

With transformImuData the inertial-to-lidar transform is looked up from tf on
a timer with bounded retries; inertial samples are held off until the lookup
resolves or gives up (after which the run is uncompensated).
"""

from typing import Optional

import numpy as np

import rclpy
from rclpy.callback_groups import MutuallyExclusiveCallbackGroup
from rclpy.node import Node
from rclpy.qos import QoSProfile, ReliabilityPolicy, HistoryPolicy, DurabilityPolicy
from rclpy.time import Time
import tf2_ros
from sensor_msgs.msg import Imu, PointCloud2, PointField
from std_msgs.msg import Header, String
from pydantic import ValidationError
from scipy.spatial.transform import Rotation

from loam_frontend.common import constants
from loam_frontend.common.param_models import (
    RegistrationParams,
    node_parameter_defaults,
    registration_params_from_node,
)
from loam_frontend.backend.pipeline import ScanRegistrationPipeline, SweepResult
from loam_frontend.backend.rerun_visualizer import RerunVisualizer
from loam_frontend.frontend.extrinsics import ExtrinsicState
from loam_frontend.frontend.pointcloud_codec import (
    XYZI_FIELDS,
    XYZI_POINT_STEP,
    XYZ_FIELDS,
    XYZ_POINT_STEP,
    pack_xyz,
    pack_xyzi,
    parse_cloud,
)


def _stamp_to_sec(stamp) -> float:
    return stamp.sec + stamp.nanosec * 1e-9


def _sec_to_stamp(t: float):
    return Time(nanoseconds=int(round(t * 1e9))).to_msg()


def _tf_frame(name: str) -> str:
    # tf2 frame ids must not carry a leading slash
    return name.lstrip("/")


def _make_cloud(header: Header, fields, point_step: int, n_points: int, data: bytes) -> PointCloud2:
    msg = PointCloud2()
    msg.header = header
    msg.height = 1
    msg.width = n_points
    msg.fields = [PointField(name=n, offset=o, datatype=d, count=1) for n, o, d in fields]
    msg.is_bigendian = False
    msg.point_step = point_step
    msg.row_step = point_step * n_points
    msg.is_dense = True
    msg.data = data
    return msg


class ScanRegistrationNode(Node):
    def __init__(self, **kwargs):
        super().__init__("scan_registration", **kwargs)
        self._declare_parameters()
        self.params = self._load_params()
        self.sweep_per_message = bool(self.get_parameter("sweep_per_message").value)

        self.pipeline = ScanRegistrationPipeline(self.params, sweep_per_message=self.sweep_per_message)
        self.imu_count = 0
        self.imu_held = 0
        self.scan_count = 0

        self.visualizer: Optional[RerunVisualizer] = None
        if bool(self.get_parameter("use_rerun").value):
            path = str(self.get_parameter("rerun_recording_path").value) or None
            self.visualizer = RerunVisualizer(
                spawn=bool(self.get_parameter("rerun_spawn").value),
                recording_path=path,
                n_rings=self.params.n_scan_rings,
            )
            if not self.visualizer.init():
                self.get_logger().warn("use_rerun=True but rerun is not importable; visualization off")
                self.visualizer = None

        self._resolve_timer = None
        if self.params.transform_imu_data:
            self.tf_buffer = tf2_ros.Buffer()
            self.tf_listener = tf2_ros.TransformListener(self.tf_buffer, self)
            self._resolve_timer = self.create_timer(
                max(self.params.transform_lookup_backoff_sec, 0.01), self._on_resolve_timer
            )

        self._init_ros()
        self.get_logger().info(
            f"Scan registration initialized: scanPeriod={self.params.scan_period} "
            f"rings={self.params.n_scan_rings} regions={self.params.feature_regions} "
            f"sweep_per_message={self.sweep_per_message} transformImuData={self.params.transform_imu_data}"
        )

    def _declare_parameters(self):
        """Declare every RegistrationParams option under its camelCase name."""
        for name, default in node_parameter_defaults().items():
            self.declare_parameter(name, default)
        self.declare_parameter("pointsInputTopic", constants.POINTS_INPUT_TOPIC_DEFAULT)
        self.declare_parameter("sweep_per_message", True)
        self.declare_parameter("use_rerun", False)
        self.declare_parameter("rerun_spawn", False)
        self.declare_parameter("rerun_recording_path", "")

    def _load_params(self) -> RegistrationParams:
        # maxCornerLessSharp left at its unset value scales with maxCornerSharp.
        values = {name: self.get_parameter(name).value for name in node_parameter_defaults()}
        try:
            return registration_params_from_node(values)
        except ValidationError as e:
            self.get_logger().error(f"Invalid scan registration parameters: {e}")
            raise

    def _init_ros(self):
        qos_sensor = QoSProfile(
            reliability=ReliabilityPolicy.BEST_EFFORT,
            history=HistoryPolicy.KEEP_LAST,
            depth=100,
            durability=DurabilityPolicy.VOLATILE,
        )

        # Separate groups so IMU callbacks run while a sweep is processed; each
        # group is serial so samples reach the integrator in arrival order.
        self.cb_group_lidar = MutuallyExclusiveCallbackGroup()
        self.cb_group_imu = MutuallyExclusiveCallbackGroup()

        points_topic = str(self.get_parameter("pointsInputTopic").value)
        self.sub_points = self.create_subscription(
            PointCloud2, points_topic, self.on_points, qos_sensor,
            callback_group=self.cb_group_lidar,
        )
        self.sub_imu = self.create_subscription(
            Imu, self.params.imu_input_topic, self.on_imu, qos_sensor,
            callback_group=self.cb_group_imu,
        )
        self.get_logger().info(f"Points: {points_topic}")
        self.get_logger().info(f"IMU: {self.params.imu_input_topic}")

        self.pub_cloud = self.create_publisher(PointCloud2, constants.TOPIC_LASER_CLOUD, 2)
        self.pub_sharp = self.create_publisher(PointCloud2, constants.TOPIC_CORNER_SHARP, 2)
        self.pub_less_sharp = self.create_publisher(PointCloud2, constants.TOPIC_CORNER_LESS_SHARP, 2)
        self.pub_flat = self.create_publisher(PointCloud2, constants.TOPIC_SURFACE_FLAT, 2)
        self.pub_less_flat = self.create_publisher(PointCloud2, constants.TOPIC_SURFACE_LESS_FLAT, 2)
        self.pub_imu_trans = self.create_publisher(PointCloud2, constants.TOPIC_IMU_TRANS, 5)
        self.pub_report = self.create_publisher(String, "scan_registration/report", 10)

    # ------------------------------------------------------------------
    # Sensor transform
    # ------------------------------------------------------------------

    def _lookup_lidar_imu(self):
        try:
            t = self.tf_buffer.lookup_transform(
                _tf_frame(self.params.lidar_frame), _tf_frame(self.params.imu_frame), Time()
            )
        except tf2_ros.TransformException as e:
            self.get_logger().warn(f"TF lookup failed ({self.params.lidar_frame} <- {self.params.imu_frame}): {e}")
            return None
        q = t.transform.rotation
        tr = t.transform.translation
        R = Rotation.from_quat([q.x, q.y, q.z, q.w]).as_matrix()
        return R, np.array([tr.x, tr.y, tr.z])

    def _on_resolve_timer(self):
        state = self.pipeline.resolver.try_once(self._lookup_lidar_imu)
        if state in (ExtrinsicState.RESOLVED, ExtrinsicState.DISABLED):
            self.pipeline.apply_extrinsic()
            self._resolve_timer.cancel()
            if state is ExtrinsicState.DISABLED:
                self.get_logger().error(
                    f"No transform {self.params.imu_frame} -> {self.params.lidar_frame} after "
                    f"{self.pipeline.resolver.attempt} attempts; publishing uncompensated sweeps"
                )
            else:
                self.get_logger().info("IMU-to-lidar transform resolved; IMU samples accepted")

    def _imu_ready(self) -> bool:
        if not self.params.transform_imu_data:
            return True
        return self.pipeline.resolver.state in (ExtrinsicState.RESOLVED, ExtrinsicState.DISABLED)

    # ------------------------------------------------------------------
    # Callbacks
    # ------------------------------------------------------------------

    def on_imu(self, msg: Imu):
        if not self._imu_ready():
            self.imu_held += 1
            return
        q = msg.orientation
        a = msg.linear_acceleration
        state = self.pipeline.add_imu(
            _stamp_to_sec(msg.header.stamp),
            [q.x, q.y, q.z, q.w],
            [a.x, a.y, a.z],
        )
        if state is not None:
            self.imu_count += 1

    def on_points(self, msg: PointCloud2):
        stamp = _stamp_to_sec(msg.header.stamp)
        try:
            raw = parse_cloud(
                [(f.name, f.offset, f.datatype) for f in msg.fields],
                bytes(msg.data),
                msg.point_step,
                msg.width * msg.height,
            )
        except ValueError as e:
            self.get_logger().error(f"Dropping cloud at t={stamp:.6f}: {e}", throttle_duration_sec=5.0)
            return

        if self.sweep_per_message:
            results = [self.pipeline.process_cloud(stamp, raw.points, raw.rings, raw.relative_times)]
        else:
            results = self.pipeline.add_points(stamp, raw.points, raw.rings, raw.relative_times)
        for result in results:
            self._publish(result)

    # ------------------------------------------------------------------
    # Output
    # ------------------------------------------------------------------

    def _publish(self, result: SweepResult):
        self.scan_count += 1
        header = Header()
        header.stamp = _sec_to_stamp(result.stamp)
        header.frame_id = _tf_frame(self.params.lidar_frame)

        def cloud(points, intensities):
            n = int(np.asarray(points).shape[0])
            return _make_cloud(header, XYZI_FIELDS, XYZI_POINT_STEP, n, pack_xyzi(points, intensities))

        f = result.features
        self.pub_cloud.publish(cloud(result.cloud, result.intensities))
        self.pub_sharp.publish(cloud(f.sharp.points, f.sharp.intensities))
        self.pub_less_sharp.publish(cloud(f.less_sharp.points, f.less_sharp.intensities))
        self.pub_flat.publish(cloud(f.flat.points, f.flat.intensities))
        self.pub_less_flat.publish(cloud(f.less_flat.points, f.less_flat.intensities))
        self.pub_imu_trans.publish(
            _make_cloud(header, XYZ_FIELDS, XYZ_POINT_STEP, 4, pack_xyz(result.summary.as_array()))
        )

        for report in result.reports:
            report.validate()
            self.pub_report.publish(String(data=report.to_json()))

        if not result.compensated:
            self.get_logger().warn("Publishing uncompensated sweep", throttle_duration_sec=10.0)
        if self.visualizer is not None:
            self.visualizer.log_sweep(result)


def main():
    rclpy.init()
    node = ScanRegistrationNode()

    from rclpy.executors import MultiThreadedExecutor
    executor = MultiThreadedExecutor(num_threads=2)
    executor.add_node(node)

    try:
        executor.spin()
    except KeyboardInterrupt:
        pass
    finally:
        node.get_logger().info(
            f"Shutting down. Final counts: sweeps={node.scan_count}, imu={node.imu_count}, "
            f"imu_rejected={node.pipeline.integrator.rejected_count}, "
            f"points_rejected={node.pipeline.accumulator.rejected_count}"
        )
        node.destroy_node()
        rclpy.shutdown()


if __name__ == "__main__":
    main()
