# setup.py
from setuptools import setup, find_packages

setup(
    name="job_scout",
    version="0.1.0",
    description="Асинхронный краулер вакансий JobScout",
    packages=find_packages(exclude=["tests", "tests.*"]),
    install_requires=[
        "aiohttp>=3.9",
        "beautifulsoup4>=4.12",
        "pydantic>=2.5",
        "PyYAML>=6.0",
        "click>=8.1",
        "playwright>=1.40",
        "openai>=1.30",
        "redis>=5.0.1",
        "python-dotenv>=1.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4",
            "pytest-asyncio>=0.23",
            "fakeredis>=2.21",
        ],
    },
    entry_points={
        "console_scripts": [
            "job-scout=job_scout.cli:cli",
        ],
    },
    python_requires=">=3.11",
)
