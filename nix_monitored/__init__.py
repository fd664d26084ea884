"""Transparent interceptor routing nix invocations through nix-output-monitor."""

__version__ = "0.3.0"
