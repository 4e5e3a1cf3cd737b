from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable

from .recipe import Recipe, Stack


@dataclass(frozen=True)
class ServiceInstance:
    """One running copy of a named service."""

    name: str
    instance: int = 0

    def __str__(self) -> str:
        return f"{self.name}/{self.instance}"

    @classmethod
    def parse(cls, text: str) -> "ServiceInstance":
        """Accept ``name/index`` or a bare ``name`` (index 0)."""
        name, sep, idx = text.strip().rpartition("/")
        if not sep:
            return cls(name=idx, instance=0)
        if not name:
            raise ValueError(f"invalid service instance: {text!r}")
        try:
            instance = int(idx)
        except ValueError:
            raise ValueError(f"invalid instance index in {text!r}") from None
        if instance < 0:
            raise ValueError(f"negative instance index in {text!r}")
        return cls(name=name, instance=instance)


class Service:
    """Runtime-level, mutable view of one registered service instance."""

    def __init__(
        self,
        id: ServiceInstance,
        directory: str,
        labels: list[str] | None = None,
        render: Callable[[str], str] | None = None,
        image: str | None = None,
    ) -> None:
        self.id = id
        self.directory = directory
        self.labels: list[str] = list(labels or [])
        self.image = image
        self.command: list[str] = []
        self.flags: list[str] = []
        self.environment: dict[str, str] = {}
        self.config: list[str] = []
        self._render = render or (lambda s: s)

    def __repr__(self) -> str:
        return f"Service({self.id})"

    def render(self, text: str) -> str:
        return self._render(text)

    def has_label(self, label: str) -> bool:
        return label in self.labels

    def add_flag(self, flag: str) -> None:
        flag = self.render(flag)
        if flag not in self.flags:
            self.flags.append(flag)

    def remove_flag(self, flag: str) -> None:
        self.flags = [f for f in self.flags if f != flag]

    def add_environment(self, key: str, value: str) -> None:
        self.environment[key] = self.render(value)

    def add_config(self, key: str, value: str) -> None:
        line = f"{key}: {self.render(value)}"
        if line not in self.config:
            self.config.append(line)

    def command_line(self) -> list[str]:
        return [*self.command, *self.flags]


def init_from_recipe(service: Service, recipe: Recipe) -> None:
    """Apply a recipe's command, environment, config entries and flags."""
    service.command = [service.render(c) for c in recipe.command]
    for key, value in recipe.environment.items():
        service.add_environment(key, value)
    for key, value in recipe.config.items():
        service.add_config(key, value)
    for flag in recipe.flags:
        service.add_flag(flag)


class Runtime(ABC):
    """Turns recipes into running, addressable services.

    Rendering and port conventions live in plain functions (``render``,
    ``ports``) so every backend resolves addresses identically.
    """

    def __init__(self, root_dir: str) -> None:
        self.root_dir = root_dir
        self.services: list[Service] = []

    def get_services(self) -> list[Service]:
        return list(self.services)

    def service_count(self, name: str) -> int:
        name = ServiceInstance.parse(name).name
        return sum(1 for s in self.services if s.id.name == name)

    @abstractmethod
    def add_service(self, recipe: Recipe) -> Service:
        """Register one new instance of ``recipe``."""

    @abstractmethod
    def get(self, instance: ServiceInstance, key: str) -> str:
        """Resolve a named variable for ``instance``."""

    @abstractmethod
    def get_host(self, instance: ServiceInstance, host_kind: str) -> str:
        pass

    @abstractmethod
    def get_port(self, instance: ServiceInstance, port_kind: str) -> int:
        pass

    @abstractmethod
    def reload(self, stack: Stack) -> None:
        pass
