"""
Core modules for SpotAlert.

This package contains channel pricing, plan ceilings, alert classification,
notifications and the ingestion flow.
"""
