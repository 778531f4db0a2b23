#!/usr/bin/env python3
"""Setup script for autotidy."""

from setuptools import find_packages, setup

with open("README.md", encoding="utf-8") as f:
    long_description = f.read()

setup(
    name="autotidy",
    version="1.0.0",
    description="Watch a downloads folder and sort new files into category folders",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="codefuturist",
    license="MIT",
    packages=find_packages(exclude=["tests", "tests.*"]),
    package_data={"autotidy": ["worker/*.py"]},
    python_requires=">=3.9",
    install_requires=[
        "watchdog>=3.0",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "autotidy=autotidy.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: End Users/Desktop",
        "License :: OSI Approved :: MIT License",
        "Operating System :: Microsoft :: Windows",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Topic :: Desktop Environment :: File Managers",
        "Topic :: Utilities",
    ],
    keywords="file organization downloads watcher scheduler tidy",
)
