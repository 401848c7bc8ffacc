"""Pydantic parameter models for the LOAM scan-registration front end."""

from __future__ import annotations

import math
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel

from loam_frontend.common import constants


class RegistrationParams(BaseModel):
    """
    Scan-registration options.

    Accepts snake_case names and the camelCase names of the ROS parameter
    layout (scanPeriod, imuHistorySize, featureRegions, ...).
    An invalid value rejects the whole configuration.
    """

    model_config = ConfigDict(
        extra="forbid",
        validate_assignment=True,
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=False,
    )

    scan_period: float = Field(constants.SCAN_PERIOD_DEFAULT, gt=0.0)
    imu_history_size: int = Field(constants.IMU_HISTORY_SIZE_DEFAULT, ge=1)
    feature_regions: int = Field(constants.FEATURE_REGIONS_DEFAULT, ge=1)
    curvature_region: int = Field(constants.CURVATURE_REGION_DEFAULT, ge=1)
    max_corner_sharp: int = Field(constants.MAX_CORNER_SHARP_DEFAULT, ge=1)
    max_corner_less_sharp: int = Field(
        constants.MAX_CORNER_SHARP_DEFAULT * constants.MAX_CORNER_LESS_SHARP_FACTOR, ge=1
    )
    max_surface_flat: int = Field(constants.MAX_SURFACE_FLAT_DEFAULT, ge=1)
    surface_curvature_threshold: float = Field(
        constants.SURFACE_CURVATURE_THRESHOLD_DEFAULT, ge=constants.SURFACE_CURVATURE_THRESHOLD_MIN
    )
    less_flat_filter_size: float = Field(
        constants.LESS_FLAT_FILTER_SIZE_DEFAULT, ge=constants.LESS_FLAT_FILTER_SIZE_MIN
    )

    n_scan_rings: int = Field(constants.N_SCAN_RINGS_DEFAULT, ge=1)
    sweep_start_angle: float = 0.0
    clockwise_rotation: bool = True

    lidar_frame: str = constants.LIDAR_FRAME_DEFAULT
    imu_frame: str = constants.IMU_FRAME_DEFAULT
    imu_input_topic: str = constants.IMU_INPUT_TOPIC_DEFAULT
    transform_imu_data: bool = False
    transform_lookup_retries: int = Field(constants.TRANSFORM_LOOKUP_RETRIES_DEFAULT, ge=1)
    transform_lookup_backoff_sec: float = Field(constants.TRANSFORM_LOOKUP_BACKOFF_SEC_DEFAULT, ge=0.0)

    gravity: float = Field(constants.GRAVITY_DEFAULT, gt=0.0)
    occlusion_sq_distance: float = Field(constants.OCCLUSION_SQ_DISTANCE_DEFAULT, gt=0.0)
    occlusion_weighted_distance: float = Field(constants.OCCLUSION_WEIGHTED_DISTANCE_DEFAULT, gt=0.0)
    parallel_beam_ratio: float = Field(constants.PARALLEL_BEAM_RATIO_DEFAULT, gt=0.0)

    @model_validator(mode="before")
    @classmethod
    def _default_less_sharp_from_sharp(cls, data: Any) -> Any:
        # Setting only the sharp cap scales the less-sharp cap with it.
        if not isinstance(data, dict):
            return data
        if "max_corner_less_sharp" in data or "maxCornerLessSharp" in data:
            return data
        sharp = data.get("max_corner_sharp", data.get("maxCornerSharp"))
        if isinstance(sharp, int) and not isinstance(sharp, bool) and sharp >= 1:
            data = dict(data)
            data["max_corner_less_sharp"] = sharp * constants.MAX_CORNER_LESS_SHARP_FACTOR
        return data

    @field_validator("sweep_start_angle")
    @classmethod
    def _finite_angle(cls, v: float) -> float:
        if not math.isfinite(v):
            raise ValueError(f"sweep_start_angle must be finite, got {v}")
        return v

    @model_validator(mode="after")
    def _check_corner_caps(self) -> "RegistrationParams":
        if self.max_corner_less_sharp < self.max_corner_sharp:
            raise ValueError(
                f"max_corner_less_sharp ({self.max_corner_less_sharp}) must be >= "
                f"max_corner_sharp ({self.max_corner_sharp})"
            )
        return self


def _unwrap_ros_parameters(data: Dict[str, Any]) -> Dict[str, Any]:
    """Strip a ROS 2 `<node>: ros__parameters:` wrapper if present."""
    if "ros__parameters" in data and isinstance(data["ros__parameters"], dict):
        return data["ros__parameters"]
    if len(data) == 1:
        (inner,) = data.values()
        if isinstance(inner, dict) and isinstance(inner.get("ros__parameters"), dict):
            return inner["ros__parameters"]
    return data


def load_registration_params(path: str) -> RegistrationParams:
    """Load and validate RegistrationParams from a YAML file."""
    import yaml

    with open(path, "r", encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"registration config must be a mapping (from {path})")
    data = _unwrap_ros_parameters(data)
    options = {k: v for k, v in data.items() if k not in constants.NODE_PARAMETER_KEYS}
    return RegistrationParams.model_validate(options)


def node_parameter_defaults() -> Dict[str, Any]:
    """
    Default of every RegistrationParams option keyed by its ROS parameter name.

    maxCornerLessSharp defaults to MAX_CORNER_LESS_SHARP_UNSET so that an
    explicit value (including the model default) is told apart from "not set".
    """
    defaults = {
        (field.alias or name): field.default for name, field in RegistrationParams.model_fields.items()
    }
    defaults[to_camel("max_corner_less_sharp")] = constants.MAX_CORNER_LESS_SHARP_UNSET
    return defaults


def registration_params_from_node(values: Dict[str, Any]) -> RegistrationParams:
    """Validate ROS parameter values (keyed by camelCase name)."""
    options = dict(values)
    key = to_camel("max_corner_less_sharp")
    if options.get(key) == constants.MAX_CORNER_LESS_SHARP_UNSET:
        del options[key]
    return RegistrationParams.model_validate(options)
