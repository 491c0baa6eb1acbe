"""Automatic Let's Encrypt certificates for Qiniu CDN domains."""

__version__ = "0.1.0"
__license__ = "MIT"
