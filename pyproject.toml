[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "kisslam"
version = "0.2.9"
description = "Voxel-hash point-to-point ICP lidar odometry with keyframe mapping and overgrowth detection"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["lidar", "odometry", "icp", "slam", "point cloud", "registration"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Science/Research",
    "Intended Audience :: Developers",
    "Operating System :: OS Independent",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Topic :: Scientific/Engineering",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["kisslam"]

[tool.hatch.build.targets.sdist]
include = ["kisslam", "tests"]

[tool.pytest.ini_options]
addopts = "-ra"
