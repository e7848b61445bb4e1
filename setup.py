# SPDX-License-Identifier: MIT
# Copyright (c) 2025 bolt-store contributors

"""Setup configuration for bolt-store package."""

from pathlib import Path

from setuptools import find_packages, setup

# Read the README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding="utf-8")

setup(
    name="bolt-store",
    version="0.1.0",
    author="bolt-store contributors",
    description="Embedded document store with equality queries and a match/group aggregation pipeline",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*"]),
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.10",
    install_requires=[
        "aiosqlite>=0.19.0",  # SQLite storage engine
        "pymongo>=4.6.3",  # MongoDB client and errors
        "motor>=3.3.0",  # Async MongoDB driver
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "mongomock-motor>=0.0.29",
            "pylint>=3.0.0",
            "mypy>=1.0.0",
        ],
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.23.0",
            "pytest-cov>=4.0.0",
            "mongomock-motor>=0.0.29",
        ],
    },
)
