"""Coupon lifecycle and eligibility engine for Vista Cafe kiosks."""

__version__ = "0.1.0"
