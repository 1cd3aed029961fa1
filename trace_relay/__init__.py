"""Demo web server that traces requests and relays correlated log lines."""

__version__ = "0.1.0"
