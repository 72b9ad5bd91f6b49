"""
Setup script for pdfcli.

This script configures the package for installation via pip.
Supports both development and production installations.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read the README for long description
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

# Read requirements
requirements = [
    line.strip()
    for line in (this_directory / "requirements.txt").read_text(encoding='utf-8').splitlines()
    if line.strip() and not line.startswith("#")
]

setup(
    name="pdfcli",
    version="0.1.0",
    description="PDF operations delegated to qpdf, poppler and Ghostscript with timeouts, fallbacks and classified errors",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="pdfcli Contributors",
    author_email="",
    packages=find_packages(include=["pdfcli", "pdfcli.*"]),
    install_requires=requirements,
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "pypdf>=3.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "pdfcli=pdfcli.cli:main",
        ],
    },
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: End Users/Desktop",
        "Intended Audience :: Developers",
        "Topic :: Office/Business",
        "Topic :: Utilities",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
        "Operating System :: OS Independent",
        "Environment :: Console",
    ],
    keywords="pdf qpdf poppler ghostscript cli compress linearize decrypt render inspect",
    license="MIT",
    include_package_data=True,
    zip_safe=False,
)
