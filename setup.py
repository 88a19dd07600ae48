#!/usr/bin/env python3
"""
Setup script for aws-keychain
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="aws-keychain",
    version="1.0.0",
    author="Tyler Zervas",
    author_email="tz-dev@vectorweight.com",
    description="Keep named AWS access keys in the platform keychain and switch between them",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/tzervas/aws-keychain",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Systems Administration :: Authentication/Directory",
    ],
    python_requires=">=3.9",
    install_requires=[
        "click>=8.1",
        "keyring>=24.0",
        "pydantic>=2.0",
        "rich>=13.0",
        "structlog>=23.1",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "aws-keychain=aws_keychain.cli:main",
        ],
    },
    include_package_data=True,
    zip_safe=False,
)
