"""Readiness taints for nodes waiting on their daemonset pods."""

__version__ = "0.1.0"
