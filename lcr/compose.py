from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml


def load_compose(path: str | Path) -> dict[str, Any]:
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path} is not a compose file (top level must be a mapping)")
    data.setdefault("services", {})
    return data


def _labels(service: dict[str, Any]) -> set[str]:
    raw = service.get("labels") or []
    if isinstance(raw, dict):
        return {str(k) for k in raw}
    return {str(x).split("=", 1)[0] for x in raw}


def select_services(project: dict[str, Any], selectors: list[str] | None = None) -> list[tuple[str, dict[str, Any]]]:
    """Services matching any selector by name or label; all of them without selectors."""
    out: list[tuple[str, dict[str, Any]]] = []
    for name, service in (project.get("services") or {}).items():
        service = service or {}
        if not selectors or name in selectors or _labels(service) & set(selectors):
            out.append((name, service))
    return out


def write_compose(project: dict[str, Any], path: str | Path) -> None:
    with open(path, "w", encoding="utf-8") as f:
        yaml.safe_dump(project, f, sort_keys=False, default_flow_style=False)
