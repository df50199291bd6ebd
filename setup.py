"""
Setup script for timestables-drill.

Timestables is a terminal multiplication drill. It serves three roles:

1. Timed Practice - Rounds that re-serve only the problems you missed
2. Progress Tracking - Every session compared against your own history
3. Hot-Seat Races - Several players racing through one shared problem set

The 'timestables' command is the primary entry point.
"""

from setuptools import find_packages, setup

setup(
    name="timestables-drill",
    version="1.0.0",
    description="Terminal multiplication-table drill with retry rounds and progress comparison",
    long_description=open("README.md", encoding="utf-8").read() if __import__("os").path.exists("README.md") else "",
    long_description_content_type="text/markdown",
    author="Timestables",
    packages=find_packages(exclude=["tests", "tests.*"]),
    py_modules=["config"],
    python_requires=">=3.10",
    install_requires=[
        # CLI
        "typer>=0.9.0",
        "rich>=13.0.0",
        # Storage
        "sqlalchemy>=2.0.0",
        # Config & Validation
        "pydantic>=2.0.0",
        "pydantic-settings>=2.0.0",
        # Logging
        "loguru>=0.7.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-cov>=4.0.0",
            "ruff>=0.1.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "timestables=timestables.cli.main:run",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Environment :: Console",
        "Intended Audience :: Education",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: Education",
        "Topic :: Education :: Computer Aided Instruction (CAI)",
    ],
    keywords="multiplication drill practice cli education",
)
