"""Local Cluster Runtime (LCR).

Provisions and launches a local multi-service test cluster from declarative
recipes. Two execution backends share one contract:
 - Standalone: plain local processes, no isolation
 - ContainerRuntime: one Docker container per service instance

Both resolve hosts, ports and variables through the same pure conventions, so a
configuration rendered for one backend stays valid under the other.
"""
from __future__ import annotations

from .container import ContainerRuntime
from .errors import (
    ClusterError,
    ConfigIOError,
    GrantUnavailable,
    HealthTimeout,
    IdentityConflict,
    PortUnknown,
    SetupFailure,
)
from .recipe import Recipe, Stack, load_stack
from .runtime import Runtime, Service, ServiceInstance
from .standalone import Standalone

__all__ = [
    "ClusterError",
    "ConfigIOError",
    "ContainerRuntime",
    "GrantUnavailable",
    "HealthTimeout",
    "IdentityConflict",
    "PortUnknown",
    "Recipe",
    "Runtime",
    "Service",
    "ServiceInstance",
    "SetupFailure",
    "Stack",
    "Standalone",
    "load_stack",
]
