"""metrics-proxy — forwards Prometheus scrapes to targets embedded in the request path."""

__version__ = "0.1.0"
