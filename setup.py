"""
LearnClip: setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run:
    learnclip run path/to/video.mp4

External tools required at runtime: ffmpeg and ffprobe on PATH.
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "LearnClip"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Turn a video into a four-pass language-learning clip",
    packages=find_namespace_packages(include=["learnclip", "learnclip.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
    ],
    extras_require={
        "test": ["pytest"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "learnclip = main:main",
        ],
    },
)
