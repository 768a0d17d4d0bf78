"""Setup configuration for simplecert."""

import os
import sys

from setuptools import find_packages, setup

# Get version from package
here = os.path.abspath(os.path.dirname(__file__))
sys.path.insert(0, here)
try:
    from simplecert import __author__, __version__
except ImportError:
    __version__ = "0.1.0"
    __author__ = "simplecert contributors"

# Get the long description from the README file
with open(os.path.join(here, "README.md"), encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="simplecert",
    version=__version__,
    description="TLS certificate cache, hot reload and renewal for long-running services",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author=__author__,
    keywords="tls ssl certificate letsencrypt acme renewal",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.8",
    install_requires=[
        "click>=8.0.0",
        "pyyaml>=6.0",
        "cryptography>=42.0.0",
        "jsonschema>=4.0.0",
        "watchdog>=2.1.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.12.0",
            "mypy>=0.991",
        ],
    },
    entry_points={
        "console_scripts": [
            "simplecert=simplecert.cli:cli",
        ],
    },
)
