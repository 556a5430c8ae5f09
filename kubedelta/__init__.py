"""kubedelta: watch Kubernetes resources and report meaningful changes."""

__version__ = "0.1.0"
