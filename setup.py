"""Setup script for factor_agent package."""

from setuptools import setup, find_packages

setup(
    name="factor-agent",
    version="0.1.0",
    description="An event-sourced agent loop with stop conditions, context compaction and human-in-the-loop pauses",
    packages=find_packages(include=["factor_agent", "factor_agent.*"]),
    python_requires=">=3.10",
    install_requires=[
        "pyyaml>=6.0",
        "httpx>=0.25.0",
    ],
    extras_require={
        "openai": ["openai>=1.0"],
        "anthropic": ["anthropic>=0.25"],
        "all": [
            "openai>=1.0",
            "anthropic>=0.25",
        ],
        "test": ["pytest>=7.0"],
    },
    entry_points={
        "console_scripts": [
            "factor-agent=factor_agent.main:main",
        ],
    },
    package_data={
        "factor_agent": ["config/default_config.yaml"],
    },
)
