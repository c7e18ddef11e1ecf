"""Building blocks for local Kubernetes clusters with Docker containers as nodes."""

__version__ = "0.6.0a0"