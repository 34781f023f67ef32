"""
Setup script for pdfwritex.

This script configures the package for installation via pip.
Supports both development and production installations.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README for long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

# Read requirements
with open(this_directory / "requirements.txt") as f:
    requirements = [line for line in f.read().splitlines() if line and not line.startswith("#")]

setup(
    name="pdfwritex",
    version="1.0.0",
    description="Low-level PDF writer with OpenType font subsetting and PNG/JPEG/PDF image embedding",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="pdfwritex Contributors",
    author_email="",
    packages=find_packages(include=["pdfwritex", "pdfwritex.*"]),
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Topic :: Multimedia :: Graphics",
        "Topic :: Printing",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Operating System :: OS Independent",
    ],
    keywords="pdf writer fonts subsetting opentype truetype images png jpeg xobject",
    license="MIT",
    include_package_data=True,
    zip_safe=False,
)
