"""
Contact database service: duplicate detection and bulk-import resolution.
"""

__version__ = "0.1.0"
