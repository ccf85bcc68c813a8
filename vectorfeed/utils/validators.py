"""
VectorFeed Input Validators
===========================

URL validation utilities used at the feed boundary.
"""

import re
from urllib.parse import urlparse, urlunparse

from .exceptions import ValidationError, ErrorCode


class URLValidator:
    """URL validation and sanitization utilities."""

    ALLOWED_SCHEMES = {'http', 'https'}

    SUSPICIOUS_PATTERNS = [
        r'javascript:',
        r'data:',
        r'file:',
        r'ftp:',
        r'localhost',
        r'127\.0\.0\.1',
        r'10\.\d+\.\d+\.\d+',
        r'192\.168\.\d+\.\d+',
    ]

    @classmethod
    def validate_feed_url(cls, url: str) -> str:
        """Validate and normalize a feed URL.

        Args:
            url: URL to validate

        Returns:
            Normalized URL

        Raises:
            ValidationError: If URL is invalid
        """
        if not url or not isinstance(url, str):
            raise ValidationError(
                "URL is required and must be a string",
                error_code=ErrorCode.VALIDATION_REQUIRED_FIELD,
                field_name="url"
            )

        url = url.strip()

        try:
            parsed = urlparse(url)
        except ValueError as e:
            raise ValidationError(
                f"Invalid URL format: {str(e)}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if parsed.scheme.lower() not in cls.ALLOWED_SCHEMES:
            raise ValidationError(
                f"URL scheme must be {' or '.join(sorted(cls.ALLOWED_SCHEMES))}",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if not parsed.netloc:
            raise ValidationError(
                "URL must include a hostname",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        if cls._has_suspicious_patterns(url):
            raise ValidationError(
                "URL contains suspicious patterns",
                error_code=ErrorCode.VALIDATION_INVALID_FORMAT,
                field_name="url"
            )

        return urlunparse(parsed._replace(
            scheme=parsed.scheme.lower(),
            netloc=parsed.netloc.lower(),
            path=parsed.path or '/',
            fragment=''
        ))

    @classmethod
    def _has_suspicious_patterns(cls, url: str) -> bool:
        url_lower = url.lower()
        return any(re.search(pattern, url_lower) for pattern in cls.SUSPICIOUS_PATTERNS)

