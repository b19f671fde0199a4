"""Package setup for image_crawler."""

from setuptools import setup, find_packages

setup(
    name="image-crawler",
    version="1.0.0",
    description="Paginated image crawler with headless fallback and bounded-concurrency downloads",
    packages=find_packages(exclude=["tests", "tests.*"]),
    python_requires=">=3.10",
    install_requires=[
        "requests>=2.31.0",
        "beautifulsoup4>=4.12.0",
        "lxml>=5.0.0",
        "urllib3>=2.0.0",
        "tqdm>=4.66.0",
        "colorlog>=6.8.0",
        "playwright>=1.40.0",
    ],
    extras_require={
        "test": [
            "pytest>=7.4.0",
        ],
    },
    entry_points={
        "console_scripts": [
            "image-crawler=image_crawler.cli:main",
        ],
    },
)
