"""Setup script for the Living Heirloom core."""

import os
from setuptools import setup, find_packages

# Read long description from README if available
long_description = ""
readme_path = os.path.join(os.path.dirname(__file__), "README.md")
if os.path.exists(readme_path):
    with open(readme_path, "r", encoding="utf-8") as f:
        long_description = f.read()

setup(
    name="living-heirloom",
    version="1.0.0",
    description="Orchestration core for recording, writing and voicing personal time capsules",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Living Heirloom Development Team",
    packages=find_packages(where="src"),
    package_dir={"": "src"},
    python_requires=">=3.10",
    install_requires=[
        "PyQt6>=6.6.0",
        "requests>=2.31.0",
        "numpy>=1.24.0",
        "cryptography>=41.0.0",
    ],
    extras_require={
        "audio": [
            "pyaudio>=0.2.13",
        ],
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
        ],
    },
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: End Users/Desktop",
        "Topic :: Multimedia :: Sound/Audio :: Speech",
        "Topic :: Security :: Cryptography",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
        "Programming Language :: Python :: 3.12",
    ],
    keywords="voice-cloning time-capsule llm encryption elevenlabs",
)
