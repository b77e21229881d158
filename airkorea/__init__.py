"""
AirKorea station monitor - polling and normalization package.

Components:
    - ingestion: AirKorea open API connector and fetch result variants
    - conversion: raw payload strings to exposed pollutant units
    - classification: composite index to discrete air-quality grade
    - engine: single-flight polling engine with self-rescheduling timer
    - accessory: sensor adapter the engine publishes readings to
"""

__version__ = "0.2.0"
