#!/usr/bin/env python3
"""
Setup script for YATL
Yet Another Terasology Launcher: release and installation lifecycle manager
"""

from pathlib import Path
from setuptools import setup, find_packages

HERE = Path(__file__).parent


def read_requirements(filename="requirements.txt"):
    """Runtime dependencies, one specifier per line."""
    lines = (HERE / filename).read_text(encoding="utf-8").splitlines()
    return [line.strip() for line in lines if line.strip() and not line.strip().startswith("#")]


setup(
    name="yatl",
    version="0.1.0",
    description="Yet Another Terasology Launcher",
    long_description=(
        "Fetches Terasology release catalogs, installs and removes game "
        "versions and launches them."
    ),
    license="MIT",

    packages=find_packages(where="src"),
    package_dir={"": "src"},
    include_package_data=True,
    package_data={"yatl": ["resources/**/*"]},

    python_requires=">=3.11",
    install_requires=read_requirements(),
    extras_require={
        "dev": [
            "pytest==8.4.1",
        ],
    },

    entry_points={
        "console_scripts": [
            "yatl=yatl.main:main",
        ],
    },

    classifiers=[
        "Development Status :: 3 - Alpha",
        "Environment :: Console",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3.11",
        "Topic :: Games/Entertainment",
    ],
    keywords="terasology launcher installer",
)
