"""
LOAM front-end backend.

Structure:
- operators/: motion compensation, curvature, feature selection, voxel filter
- pipeline.py: ScanRegistrationPipeline (per-sweep chain)
- scan_registration_node.py: ROS 2 node entry point
- rerun_visualizer.py: optional Rerun logging of sweeps
"""

# Lazy imports keep ROS and JAX out of plain package import
__all__ = [
    "ScanRegistrationPipeline",
    "SweepResult",
]


def __getattr__(name):
    if name == "ScanRegistrationPipeline":
        from loam_frontend.backend.pipeline import ScanRegistrationPipeline
        return ScanRegistrationPipeline
    elif name == "SweepResult":
        from loam_frontend.backend.pipeline import SweepResult
        return SweepResult
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
