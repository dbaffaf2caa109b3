"""Setup configuration for player-discovery tool."""

from setuptools import setup, find_packages

setup(
    name="player-discovery",
    version="0.1.0",
    description="LAN multicast discovery of attachable players for debugger tooling",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.9",
    install_requires=[
        "pyyaml>=6.0",
        "click>=8.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "player-discovery=player_discovery.cli:main",
        ],
    },
)
