"""Port and host conventions shared by every backend.

Ports are a pure function of (service name, instance, port kind). A config
rendered against the standalone runtime is therefore valid inside containers
and the other way around.
"""
from __future__ import annotations

from .errors import PortUnknown
from .runtime import ServiceInstance

LOCALHOST = "localhost"

# service -> port kind -> base port. The instance index is added to the base.
_FIXED: dict[str, dict[str, int]] = {
    "satellite-api": {"public": 7777, "private": 7778, "console": 10000, "debug": 11111},
    "satellite-core": {"debug": 11112},
    "satellite-admin": {"console": 9080, "debug": 11113},
    "satellite-gc": {"debug": 11114},
    "satellite-bf": {"debug": 11115},
    "satellite-rangedloop": {"debug": 11116},
    "satellite-repair": {"debug": 11117},
    "gateway-mt": {"public": 9999, "debug": 11118},
    "authservice": {"public": 8888, "debug": 11119},
    "linksharing": {"public": 9090, "debug": 11120},
    "versioncontrol": {"public": 7070},
    "cockroach": {"public": 26257, "console": 8086},
    "postgres": {"public": 5432},
    "redis": {"public": 6379},
}

# Storagenodes get a block of ten ports each.
_STORAGENODE_BASE = 30000
_STORAGENODE_OFFSETS = {"public": 0, "private": 1, "console": 2, "debug": 9}


def port_convention(instance: ServiceInstance, port_kind: str) -> int:
    """Return the conventional port or raise ``PortUnknown``."""
    kind = port_kind.lower()
    if instance.name == "storagenode":
        offset = _STORAGENODE_OFFSETS.get(kind)
        if offset is None:
            raise PortUnknown(instance.name, port_kind)
        return _STORAGENODE_BASE + instance.instance * 10 + offset

    base = _FIXED.get(instance.name, {}).get(kind)
    if base is None:
        raise PortUnknown(instance.name, port_kind)
    return base + instance.instance


def unique_host(instance: ServiceInstance) -> str:
    """Network name of an instance: ``name`` for the first copy, ``name<index+1>`` after."""
    if instance.instance > 0:
        return f"{instance.name}{instance.instance + 1}"
    return instance.name
