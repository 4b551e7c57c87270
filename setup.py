"""
FileBox setup.py — Package configuration.
"""

from setuptools import find_packages, setup

setup(
    name="filebox",
    version="1.0.0",
    description="FileBox — folder/file namespace with single-owner locks",
    packages=find_packages(include=["filebox", "filebox.*"]),
    python_requires=">=3.11",
    install_requires=[
        "sqlalchemy>=2.0",
        "psycopg2-binary>=2.9",
        "pydantic>=2.5",
        "networkx>=3.2",
        "pyyaml>=6.0",
        "httpx>=0.27",
    ],
    extras_require={
        "test": [
            "pytest>=7.0",
        ],
    },
)
