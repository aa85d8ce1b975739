"""
MeetingNotes setuptools build script.

Usage:
    # Development (editable install):
    pip install -e .[test]

    # Run:
    meetnotes --help
"""

from setuptools import setup, find_namespace_packages

APP_NAME = "MeetingNotes"

setup(
    name=APP_NAME,
    version="1.0.0",
    description="Turn meeting recordings into structured notes",
    packages=find_namespace_packages(include=["meetnotes", "meetnotes.*"]),
    py_modules=["main"],
    install_requires=[
        "requests>=2.28.0",
        "boto3>=1.28.0",
    ],
    extras_require={
        "test": ["pytest>=7.0"],
    },
    python_requires=">=3.10",
    entry_points={
        "console_scripts": [
            "meetnotes=main:main",
        ],
    },
)
