"""
Cross-cutting domain helpers for the Storefront service.
"""
