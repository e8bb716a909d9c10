"""Storefront API: product catalog, checkout, orders and invoices."""

__version__ = "1.1.0"
