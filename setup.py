# setup.py
from setuptools import setup, find_packages

setup(
    name="asset-sentry",
    version="0.1.0",
    description="Асинхронный сканер внешних ресурсов сайта AssetSentry",
    packages=find_packages(exclude=("tests", "tests.*")),
    package_data={"asset_sentry.report": ["templates/*.j2"]},
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "click>=8.1",
        "dnspython>=2.6",
        "Jinja2>=3.1",
        "lxml>=5.0",
        "playwright>=1.44",
        "pydantic>=2.5",
        "PyYAML>=6.0",
    ],
    extras_require={
        "test": [
            "pytest>=8.0",
            "pytest-asyncio>=0.23",
        ],
    },
    entry_points={
        "console_scripts": [
            "asset-sentry=asset_sentry.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
