"""Setup configuration for erpcore."""

from setuptools import setup, find_packages

setup(
    name="erpcore",
    version="1.0.0",
    description="Resilient operation executor and GRN import normalization for the ERP front end",
    packages=find_packages(exclude=["tests*"]),
    install_requires=[
        "click>=8.1.7",
        "pydantic>=2.5.0",
        "pydantic-settings>=2.1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
        ],
    },
    entry_points={
        "console_scripts": [
            "erpcore=erpcore.cli:cli",
        ],
    },
    python_requires=">=3.8",
)
