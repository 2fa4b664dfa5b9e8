"""Storefront request handlers and data models over MongoDB: products, reviews, users, merchants and payment payloads."""

__version__ = "0.1.0"