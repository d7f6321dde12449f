#!/usr/bin/env python3
from setuptools import setup

setup(
    name="multitypetree",
    version="0.1.0",
    description="Structured coalescent densities, proposals and simulations "
    "for trees annotated with migration histories.",
    packages=["multitypetree"],
    python_requires=">=3.8",
    install_requires=[
        "arviz>=0.15,<1.0",
        "attrs>=20.3.0",
        "numpy>=1.20",
        "scipy>=1.6",
        "ruamel.yaml>=0.17.21",
    ],
    extras_require={
        "tests": ["pytest", "hypothesis"],
        "verification": ["matplotlib"],
    },
    entry_points={
        "console_scripts": ["multitypetree=multitypetree.__main__:cli"],
    },
)
