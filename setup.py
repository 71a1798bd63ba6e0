"""
Setup script for the Crosswalk Adjustment Engine
"""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="crosswalk",
    version="0.1.0",
    author="Your Name",
    author_email="your.email@example.com",
    description="Network meta-regression crosswalks between case definitions",
    long_description=long_description,
    long_description_content_type="text/markdown",
    url="https://github.com/yourusername/crosswalk",
    packages=find_packages(include=["crosswalk", "crosswalk.*"]),
    py_modules=["run_crosswalk"],
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Science/Research",
        "Topic :: Scientific/Engineering :: Medical Science Apps.",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    python_requires=">=3.9",
    install_requires=[
        "numpy>=1.20.0",
        "pandas>=1.3.0",
        "scipy>=1.7.0",
        "pydantic>=2.0",
        "pyyaml>=5.4",
        "openpyxl>=3.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0,<9",
            "pytest-cov>=3.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "crosswalk=run_crosswalk:main",
        ],
    },
)
