"""Placeholder substitution for service configuration.

Placeholders look like ``{{ Func "arg" }}`` or ``{{ Func "service/idx" "arg" }}``:

    {{ Get "main" }}                          variable of the owning instance
    {{ Host "internal" }}                     host of the owning instance
    {{ Port "public" }}                       port of the owning instance
    {{ Host "satellite-api" "external" }}     host of satellite-api/0
    {{ Port "storagenode/3" "public" }}       port of storagenode/3

Nothing is cached: every call asks the runtime again.
"""
from __future__ import annotations

import re

from .errors import RenderError
from .runtime import Runtime, ServiceInstance

PLACEHOLDER_RE = re.compile(r"\{\{\s*(\w+)((?:\s+\"[^\"]*\")*)\s*\}\}")
_ARG_RE = re.compile(r"\"([^\"]*)\"")


def _resolve(runtime: Runtime, owner: ServiceInstance, func: str, args: list[str]) -> str:
    if len(args) == 1:
        target, arg = owner, args[0]
    elif len(args) == 2:
        try:
            target = ServiceInstance.parse(args[0])
        except ValueError as e:
            raise RenderError(f"{func}: invalid service reference {args[0]!r}") from e
        arg = args[1]
    else:
        raise RenderError(f"{func} expects 1 or 2 arguments, got {len(args)}")

    if func == "Get":
        return runtime.get(target, arg)
    if func == "Host":
        return runtime.get_host(target, arg)
    if func == "Port":
        return str(runtime.get_port(target, arg))
    raise RenderError(f"unknown placeholder function '{func}'")


def render(runtime: Runtime, instance: ServiceInstance, template: str) -> str:
    """Substitute every placeholder in ``template`` against ``runtime``."""

    def _sub(m: re.Match[str]) -> str:
        return _resolve(runtime, instance, m.group(1), _ARG_RE.findall(m.group(2)))

    return PLACEHOLDER_RE.sub(_sub, template)
