"""
Guest pass quota resolution and client-side caching for the community dashboard.
"""

__version__ = "0.1.0"
