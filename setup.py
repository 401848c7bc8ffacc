from setuptools import find_packages, setup

package_name = "loam_frontend"

setup(
    name=package_name,
    version="0.1.0",
    packages=find_packages(exclude=["test"]),
    data_files=[
        ("share/ament_index/resource_index/packages", ["resource/" + package_name]),
        ("share/" + package_name, ["package.xml"]),
        (
            "share/" + package_name + "/launch",
            [
                "launch/scan_registration.launch.py",
            ],
        ),
        (
            "share/" + package_name + "/config",
            [
                "config/scan_registration.yaml",
            ],
        ),
    ],
    install_requires=["setuptools", "numpy", "scipy", "jax", "pyyaml", "pydantic>=2", "rerun-sdk"],
    extras_require={"test": ["pytest"]},
    zip_safe=True,
    maintainer="Will Haber",
    maintainer_email="whab13@mit.edu",
    description="LOAM scan registration front end - motion-compensated lidar feature extraction (ROS 2 Jazzy)",
    license="Apache-2.0",
    tests_require=["pytest"],
    entry_points={
        "console_scripts": [
            "scan_registration_node = loam_frontend.backend.scan_registration_node:main",
        ],
    },
)
