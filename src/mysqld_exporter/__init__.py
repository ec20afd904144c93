"""
MySQL Server Exporter

Exposes MySQL server health and performance metrics to Prometheus. Each
scrape runs the enabled collectors concurrently against one server
instance under a deadline and returns the text exposition format.
"""

__version__ = "0.1.0"
