"""
BillVault setup.py — Package configuration and CLI entry point.
"""

from setuptools import find_packages, setup

setup(
    name="billvault",
    version="1.0.0",
    description="BillVault — document persistence and auto-save for spreadsheet bills",
    packages=find_packages(include=["billvault", "billvault.*"]),
    python_requires=">=3.11",
    entry_points={
        "console_scripts": [
            "billvault=billvault.cli:main",
        ],
    },
    install_requires=[
        "sqlalchemy>=2.0",
        "pydantic>=2.5",
        "bcrypt>=4.1",
        "pyyaml>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
        ],
    },
)
