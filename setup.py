#!/usr/bin/env python

from setuptools import setup

setup(
    name="bazelproj",
    version="0.1.0",
    packages=[
        "bazelproj",
        "bazelproj.details",
        "bazelproj.details.tools",
        "bazelproj.generators",
        "bazelproj.generators.xcode",
    ],
    python_requires=">=3.9",
    extras_require={"test": ["pytest"]},
    entry_points={"console_scripts": ["bazelproj = bazelproj.__main__:main"]},
)
