"""
Infrastructure module exports.

Configuration and bootstrap for the inference client and model backend.
"""

from .config import InfraConfig, get_config, ModelBackendType
from .bootstrap import InfraBootstrap, bootstrap_infrastructure

__all__ = [
    "InfraConfig",
    "get_config",
    "ModelBackendType",
    "InfraBootstrap",
    "bootstrap_infrastructure",
]
