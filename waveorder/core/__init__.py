# waveorder/core/__init__.py
"""Settings, logging, domain errors and shared constants."""
