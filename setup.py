from setuptools import setup, find_packages

setup(
    name="pinspot-core",
    version="0.1.0",
    description="Spatial photo clustering and geocoding utilities for Pinspot travel maps",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "Pillow>=9.0",
        "piexif>=1.1",
        "pydantic>=2.0",
        "pydantic-settings>=2.0",
        "httpx>=0.24",
        "tenacity>=8.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
            "pytest-asyncio>=0.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "pinspot-cluster=pinspot_core.cli:main",
        ],
    },
    python_requires=">=3.8",
)
