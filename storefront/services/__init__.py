"""Catalog services: money helpers, models, normalization, repositories."""
