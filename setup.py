"""Setup script for QSL Logbook."""

from setuptools import find_packages, setup

# Build configuration
setup(
    name="qsl-logbook",
    version="0.1.0",
    description="Publish an ADIF QSO log as a QSL lookup site",
    python_requires=">=3.11",
    packages=find_packages(include=["qsl_logbook", "qsl_logbook.*"]),
    install_requires=[
        "sqlmodel>=0.0.16",
        "typer>=0.12",
        "rich>=13.0",
        "platformdirs>=4.0",
        "fastapi>=0.110",
        "uvicorn>=0.29",
        "python-multipart>=0.0.9",
        "maidenhead>=1.7",
        "geopy>=2.4",
        "matplotlib>=3.8",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "httpx>=0.27",
        ],
    },
    entry_points={
        "console_scripts": [
            "qsl-logbook=qsl_logbook.cli:main",
        ],
    },
    zip_safe=False,
)
