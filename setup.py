"""
termlink - ssh terminal sessions over pipes, with ANSI decoding.
"""

from setuptools import setup, find_packages
from pathlib import Path

readme = Path(__file__).parent / "README.md"
long_description = readme.read_text() if readme.exists() else ""

setup(
    name="termlink",
    version="0.1.0",
    description="ssh terminal session engine with a chunk-safe ANSI decoder",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(include=["termlink", "termlink.*"]),
    include_package_data=True,
    package_data={
        "termlink.decoder": ["palettes/*.yaml"],
    },
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.4.0",
        "paramiko>=3.0.0",
        "cryptography>=41.0.0",
        "PyYAML>=6.0",
        "click>=8.0.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.0.0",
            "pytest-qt>=4.0.0",
            "black>=23.0.0",
            "mypy>=1.0.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "termlink=termlink.cli:main",
        ],
    },
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Intended Audience :: Developers",
        "License :: OSI Approved :: MIT License",
        "Operating System :: POSIX",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Topic :: System :: Networking",
        "Topic :: Terminals",
    ],
    keywords="ssh terminal ansi sshpass expect pyqt6",
)
