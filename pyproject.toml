[build-system]
requires = ["hatchling"]
build-backend = "hatchling.build"

[project]
name = "tensorgrad"
version = "0.1.0"
description = "A small float32 tensor with broadcasting arithmetic and reverse-mode automatic differentiation"
requires-python = ">=3.10"
dependencies = [
    "numpy",
]
keywords = ["tensor", "autograd", "backpropagation", "neural-network", "transformer"]
classifiers = [
    "Development Status :: 3 - Alpha",
    "Intended Audience :: Developers",
    "Intended Audience :: Science/Research",
    "Programming Language :: Python :: 3",
    "Programming Language :: Python :: 3 :: Only",
    "Programming Language :: Python :: 3.10",
    "Programming Language :: Python :: 3.11",
    "Programming Language :: Python :: 3.12",
    "Programming Language :: Python :: 3.13",
    "Operating System :: OS Independent",
    "Topic :: Scientific/Engineering :: Artificial Intelligence",
]

[project.optional-dependencies]
test = [
    "pytest",
]

[tool.hatch.build.targets.wheel]
packages = ["tensorgrad"]

[tool.pytest.ini_options]
testpaths = ["tests"]
addopts = "-ra"
