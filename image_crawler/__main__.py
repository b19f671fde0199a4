"""
Main entry point for the image_crawler package.

Allows running the crawler as: python -m image_crawler
"""

from image_crawler.cli import main

if __name__ == "__main__":
    main()
