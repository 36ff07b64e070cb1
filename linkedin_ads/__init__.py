"""
LinkedIn Marketing API command-line client.
Maps the Rest.li resource catalog onto HTTP requests and drives the
asset upload pipeline for images and videos.
"""

__version__ = "0.1.0"
