"""
Heirloom Utilities Package

This package contains retry, timeout, error formatting, sanitization and
audio analysis helpers.
"""
