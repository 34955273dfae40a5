"""
Setup script for the Library Server
Install with: pip install -e .
"""

from setuptools import setup, find_packages
from pathlib import Path

# Read README for long description
readme_file = Path(__file__).parent / "README.md"
long_description = readme_file.read_text(encoding="utf-8") if readme_file.exists() else ""

# Read requirements
requirements_file = Path(__file__).parent / "requirements.txt"
requirements = []
if requirements_file.exists():
    with open(requirements_file, 'r', encoding='utf-8') as f:
        requirements = [
            line.strip()
            for line in f
            if line.strip() and not line.startswith('#')
        ]

TEST_REQUIREMENTS = ["pytest", "pytest-asyncio", "httpx"]

setup(
    name="library-server",
    version="1.0.0",
    description="REST server for a school library: borrowers, items and circulation on PostgreSQL",
    long_description=long_description,
    long_description_content_type="text/markdown",
    packages=find_packages(exclude=["tests", "tests.*", "docs"]),
    py_modules=[
        "server",
        "config",
        "database",
        "models",
        "errors",
        "auth",
        "container",
    ],
    python_requires=">=3.9",
    install_requires=[r for r in requirements if r.split(">")[0] not in TEST_REQUIREMENTS],
    extras_require={"test": [r for r in requirements if r.split(">")[0] in TEST_REQUIREMENTS]},
    entry_points={
        "console_scripts": [
            "library-server=server:cli_entry",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Education",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="library server rest postgresql fastapi",
)
