"""Storefront backend: catalog, checkout, payment reconciliation and fulfilment"""

__version__ = "1.0.0"
