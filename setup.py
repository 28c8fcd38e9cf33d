from __future__ import annotations

from pathlib import Path

from setuptools import find_packages, setup


ROOT = Path(__file__).resolve().parent


def read_text(path: Path) -> str:
    return path.read_text(encoding="utf-8")


VERSION = read_text(ROOT / "VERSION").strip()
README = read_text(ROOT / "README.md")


setup(
    name="dp2client",
    version=VERSION,
    description="Command line client for the DAISY Pipeline 2 web service.",
    long_description=README,
    long_description_content_type="text/markdown",
    author="DAISY Pipeline Client Team",
    python_requires=">=3.8",
    packages=find_packages(include=["dp2client", "dp2client.*"]),
    include_package_data=True,
    install_requires=[
        "httpx>=0.24",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": ["pytest>=7"],
    },
    entry_points={
        "console_scripts": [
            "dp2=dp2client.cli:main",
        ]
    },
    classifiers=[
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3 :: Only",
        "License :: OSI Approved :: MIT License",
        "Operating System :: OS Independent",
    ],
    keywords=["daisy", "pipeline", "client", "accessibility"],
)
