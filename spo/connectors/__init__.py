"""
SPO Connectors package for external system integration.
"""

from spo.connectors.kubectl import create_kubectl_connector

__all__ = [
    "create_kubectl_connector",
]
