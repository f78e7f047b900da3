"""
Train Run Simulator - Setup Script
==================================

Installation script for the train run simulation engine.
Provides both development and installation modes.
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README file
this_directory = Path(__file__).parent
long_description = (this_directory / "README.md").read_text(encoding='utf-8')

# Read requirements
requirements = []
requirements_file = this_directory / "requirements.txt"
if requirements_file.exists():
    with open(requirements_file, 'r', encoding='utf-8') as f:
        requirements = [line.strip() for line in f if line.strip() and not line.startswith('#')]

# Optional dependencies
extras_require = {
    'dev': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0',
        'black>=21.0.0',
        'flake8>=3.9.0',
        'mypy>=0.910'
    ],
    'test': [
        'pytest>=6.0.0',
        'pytest-cov>=2.12.0'
    ]
}

setup(
    name="train-run-simulator",
    version="1.0.0",
    author="Train Simulation Team",
    description="Train run simulation engine with a REST API for traction energy studies",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Science/Research",
        "Intended Audience :: Education",
        "Topic :: Scientific/Engineering :: Physics",
        "License :: OSI Approved :: MIT License",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
        "Operating System :: OS Independent",
    ],
    python_requires=">=3.9",
    install_requires=requirements,
    extras_require=extras_require,
    include_package_data=True,
    entry_points={
        "console_scripts": [
            "trainsim-server=trainsim.api.server:run_server",
            "trainsim=trainsim.main:main",
        ],
    },
    keywords="train railway simulation traction energy dynamics",
    zip_safe=False,
)
