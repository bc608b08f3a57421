"""
SpotAlert: camera alert ingestion with face matching and usage billing.
"""

__version__ = "0.1.0"
