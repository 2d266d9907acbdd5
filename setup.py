from setuptools import setup, find_packages

setup(
    name="target-onchain",
    version="0.1.0",
    description="Storefront frames that recommend products from onchain attestations",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    package_dir={"": "src"},
    packages=find_packages(where="src"),
    package_data={"target_onchain": ["migrations/*.sql", "data/*.json"]},
    install_requires=[
        "fastapi>=0.110",
        "pydantic>=2.0",
        "httpx>=0.25",
        "asyncpg>=0.29",
        "eth-abi>=5.0",
        "python-json-logger>=3.1",
        "slowapi>=0.1.9",
        "uvicorn>=0.27",
    ],
    extras_require={"dev": ["pytest>=7.0", "pytest-asyncio>=0.21", "respx>=0.20"]},
    entry_points={"console_scripts": ["target-onchain=target_onchain.cli:main"]},
    python_requires=">=3.10",
    classifiers=[
        "Development Status :: 3 - Alpha",
        "Framework :: FastAPI",
        "Topic :: Internet :: WWW/HTTP :: HTTP Servers",
        "Programming Language :: Python :: 3",
    ],
    keywords="farcaster frames eas attestations storefront recommendations",
)
