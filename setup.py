"""Setup configuration for Stargate Document Search."""

from setuptools import setup, find_packages

with open("README.md", "r", encoding="utf-8") as fh:
    long_description = fh.read()

setup(
    name="stargate-docsearch",
    version="1.0.0",
    description="Fluent search queries and an async client for the Stargate Document API",
    long_description=long_description,
    long_description_content_type="text/markdown",
    author="Stargate Document Search Team",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    python_requires=">=3.11",
    install_requires=[
        "httpx>=0.27.0",
        "pydantic>=2.0.0",
        "python-dotenv",
        "tenacity>=9.1.2",
        "opentelemetry-api>=1.20.0",
        "prometheus-client>=0.18.0",
    ],
    extras_require={
        "dev": [
            "pytest>=7.4.0",
            "pytest-asyncio>=0.21.0",
            "pytest-cov>=4.1.0",
        ],
        "otel": [
            "opentelemetry-sdk>=1.20.0",
        ],
    },
    classifiers=[
        "Development Status :: 5 - Production/Stable",
        "Intended Audience :: Developers",
        "Topic :: Database",
        "Topic :: Software Development :: Libraries :: Python Modules",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.12",
        "Programming Language :: Python :: 3.13",
    ],
)
