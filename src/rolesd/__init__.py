"""Role-based file_sd discovery fed by Prometheus ``up`` series."""

__version__ = "0.1.0"
