"""
Contacts Bridge

Unified contact management over row-store and graph-store address books.
"""

__version__ = "0.1.0"
