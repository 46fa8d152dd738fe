from setuptools import setup, find_packages

setup(
    name="crawlqa",
    version="1.0.0",
    packages=find_packages("src"),
    package_dir={"": "src"},
    install_requires=[
        "playwright>=1.40.0",
        "openai>=1.0.0",
        "rich",
        "beautifulsoup4>=4.12.0",
        "dataclasses-json>=0.6.0",
        "python-dotenv>=1.0.0",
        "pyyaml>=6.0",
        # Run control API
        "fastapi>=0.109.2",
        "uvicorn>=0.27.1",
        "aiofiles>=23.2.1",
        "pydantic>=2.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.0.0",
            "pytest-asyncio>=0.21.0",
            "httpx>=0.25.2",
        ],
    },
    entry_points={
        "console_scripts": [
            "crawlqa=crawlqa.cli:main",
            "crawlqa-api=crawlqa.web.api:main",
        ],
    },
    python_requires=">=3.9",
    description="Autonomous web UI discovery and cross-browser regression testing",
    long_description=open("README.md").read(),
    long_description_content_type="text/markdown",
    classifiers=[
        "Development Status :: 4 - Beta",
        "Intended Audience :: Developers",
        "Programming Language :: Python :: 3",
        "Programming Language :: Python :: 3.9",
        "Programming Language :: Python :: 3.10",
        "Programming Language :: Python :: 3.11",
    ],
)
