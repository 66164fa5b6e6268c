"""Sparkplug B edge node: session/sequence lifecycle engine with a REST API."""

__version__ = "0.1.0"
