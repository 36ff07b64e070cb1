"""
Shared module for the LinkedIn Ads CLI.
Contains environment access, logging setup and storage handlers.
"""

from shared.utils.logging import setup_logging
from shared.utils.env import get_env, first_env

# S3Handler requires minio; import it directly when needed:
#   from shared.storage.s3_handler import S3Handler

__all__ = [
    "setup_logging",
    "get_env",
    "first_env",
]
