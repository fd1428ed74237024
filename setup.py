from setuptools import setup, find_packages

setup(
    name="icyripper",
    version="0.1.0",
    description="Record ICY/Shoutcast internet radio streams to per-track files",
    author="",
    python_requires=">=3.10",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.8.0",
        "rich>=12.5.0",
        "click>=8.1.0",
        "pydantic>=2.0.0",
        "pyyaml>=6.0.0",
        "pypubsub>=4.0.3",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "icyripper=icyripper.main:main",
        ],
    },
)
