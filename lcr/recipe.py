from __future__ import annotations

from pathlib import Path

import yaml
from pydantic import BaseModel, Field


class Recipe(BaseModel):
    """Declarative description of one service to instantiate."""

    name: str = Field(..., description="Service name, e.g. satellite-api or storagenode")
    command: list[str] = Field(default_factory=list, description="Launch argument vector (may be empty)")
    labels: list[str] = Field(default_factory=list, description="Capability tags, e.g. storj, db")
    flags: list[str] = Field(default_factory=list, description="Initial command line flags (templates)")
    environment: dict[str, str] = Field(default_factory=dict, description="Environment variables (templates)")
    config: dict[str, str] = Field(default_factory=dict, description="Config file entries (templates)")
    image: str | None = Field(None, description="Container image, used by the container backend")

    model_config = {"frozen": True}

    def has_label(self, label: str) -> bool:
        return label in self.labels


class Stack(BaseModel):
    services: list[Recipe] = Field(default_factory=list)

    def get(self, name: str) -> Recipe | None:
        for r in self.services:
            if r.name == name:
                return r
        return None


def load_stack(path: str | Path) -> Stack:
    """Read a YAML recipe file.

    Either a mapping with a ``services`` list or a bare list of recipes.
    """
    with open(path, encoding="utf-8") as f:
        data = yaml.safe_load(f) or []
    if isinstance(data, list):
        data = {"services": data}
    return Stack.model_validate(data)
