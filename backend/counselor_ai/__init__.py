"""Counselor AI - multi-provider chat completion backend for the counseling assistant."""
__version__ = "1.0.0"
