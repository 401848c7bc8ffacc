"""
PointCloud2 payload codec (pure NumPy, no ROS imports).

The node hands over (fields, data, point_step, n_points) from a
sensor_msgs/PointCloud2; fields are (name, offset, datatype) triples using
the PointField datatype codes below.

Per-point time is taken from, in order of preference:
  - "time"  float seconds relative to the message stamp (Velodyne driver)
  - "t"     uint32 nanoseconds relative to the message stamp (Ouster driver)
If neither is present the caller derives times from azimuth.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

# sensor_msgs/PointField datatype codes
INT8 = 1
UINT8 = 2
INT16 = 3
UINT16 = 4
INT32 = 5
UINT32 = 6
FLOAT32 = 7
FLOAT64 = 8

FieldSpec = Tuple[str, int, int]


def pointfield_to_dtype(datatype: int) -> np.dtype:
    """Map a PointField datatype code to a little-endian numpy dtype."""
    if datatype == INT8:
        return np.dtype("i1")
    if datatype == UINT8:
        return np.dtype("u1")
    if datatype == INT16:
        return np.dtype("<i2")
    if datatype == UINT16:
        return np.dtype("<u2")
    if datatype == INT32:
        return np.dtype("<i4")
    if datatype == UINT32:
        return np.dtype("<u4")
    if datatype == FLOAT32:
        return np.dtype("<f4")
    if datatype == FLOAT64:
        return np.dtype("<f8")
    raise ValueError(f"Unsupported PointField datatype: {datatype}")


@dataclass
class RawCloud:
    points: np.ndarray                      # (N,3) float64
    rings: np.ndarray                       # (N,) int64
    relative_times: Optional[np.ndarray]    # (N,) float64 seconds, or None


def parse_cloud(
    fields: Sequence[FieldSpec],
    data: bytes,
    point_step: int,
    n_points: int,
) -> RawCloud:
    """
    Decode xyz, ring and (optional) per-point time.

    Raises ValueError when x/y/z or ring is missing.
    """
    if n_points <= 0:
        return RawCloud(points=np.zeros((0, 3)), rings=np.zeros((0,), dtype=np.int64), relative_times=None)

    field_map = {name: (offset, datatype) for name, offset, datatype in fields}
    missing = [k for k in ("x", "y", "z", "ring") if k not in field_map]
    if missing:
        raise ValueError(
            f"PointCloud2 missing required fields: {missing}. "
            f"Present fields: {sorted(field_map.keys())}"
        )

    names = []
    formats = []
    offsets = []
    for name in ("x", "y", "z", "ring", "time", "t"):
        if name in field_map:
            off, dt = field_map[name]
            names.append(name)
            formats.append(pointfield_to_dtype(dt))
            offsets.append(off)
    dtype = np.dtype({"names": names, "formats": formats, "offsets": offsets, "itemsize": point_step})
    arr = np.frombuffer(data, dtype=dtype, count=n_points)

    points = np.stack(
        [
            np.asarray(arr["x"], dtype=np.float64),
            np.asarray(arr["y"], dtype=np.float64),
            np.asarray(arr["z"], dtype=np.float64),
        ],
        axis=1,
    )
    rings = np.asarray(arr["ring"], dtype=np.int64)

    rel = None
    if "time" in arr.dtype.names:
        rel = np.asarray(arr["time"], dtype=np.float64)
    elif "t" in arr.dtype.names:
        rel = np.asarray(arr["t"], dtype=np.float64) * 1e-9
    return RawCloud(points=points, rings=rings, relative_times=rel)


XYZI_FIELDS: List[FieldSpec] = [
    ("x", 0, FLOAT32),
    ("y", 4, FLOAT32),
    ("z", 8, FLOAT32),
    ("intensity", 12, FLOAT32),
]
XYZI_POINT_STEP = 16


def pack_xyzi(points: np.ndarray, intensities: np.ndarray) -> bytes:
    """Pack (N,3) points + (N,) intensity into x,y,z,intensity float32 records."""
    pts = np.asarray(points, dtype=np.float32).reshape(-1, 3)
    inten = np.asarray(intensities, dtype=np.float32).reshape(-1)
    if inten.shape[0] != pts.shape[0]:
        raise ValueError(f"pack_xyzi: {pts.shape[0]} points but {inten.shape[0]} intensities")
    buf = np.empty((pts.shape[0], 4), dtype="<f4")
    buf[:, :3] = pts
    buf[:, 3] = inten
    return buf.tobytes()


XYZ_FIELDS: List[FieldSpec] = [
    ("x", 0, FLOAT32),
    ("y", 4, FLOAT32),
    ("z", 8, FLOAT32),
]
XYZ_POINT_STEP = 12


def pack_xyz(points: np.ndarray) -> bytes:
    """Pack (N,3) points into x,y,z float32 records."""
    return np.asarray(points, dtype="<f4").reshape(-1, 3).tobytes()
