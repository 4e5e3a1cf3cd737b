from __future__ import annotations

import functools
import os
import shutil
import subprocess
from typing import Callable

from .credentials import access_grant, request_api_key
from .db import log_event
from .errors import ConfigIOError, SetupFailure
from .identity import ROOT_SERVICE, IdentityProvisioner, RootIdentity
from .ports import LOCALHOST, port_convention
from .recipe import Recipe, Stack
from .render import render
from .runtime import Runtime, Service, ServiceInstance, init_from_recipe
from .settings import settings

CONFIG_FILE = "config.yaml"

GrantFetcher = Callable[[str, str], str]


def comment_defaults(lines: list[str]) -> list[str]:
    """Comment out every generated setting so explicit flags always win."""
    out: list[str] = []
    for line in lines:
        stripped = line.strip()
        if stripped and not stripped.startswith("#"):
            out.append("#" + stripped)
        else:
            out.append(line)
    return out


def _read_config(path: str) -> list[str]:
    try:
        with open(path, encoding="utf-8") as f:
            lines = f.read().split("\n")
    except OSError as e:
        raise ConfigIOError(f"Could not read config {path}: {e}") from e
    while lines and not lines[-1].strip():
        lines.pop()
    return lines


def default_variables(root_dir: str, project_dir: str) -> dict[str, dict[str, str]]:
    return {
        "cockroach": {
            "main": "cockroach://root@localhost:26257/master?sslmode=disable",
            "metainfo": "cockroach://root@localhost:26257/metainfo?sslmode=disable",
            "dir": os.path.join(root_dir, "cockroach", "0", "data"),
        },
        "storagenode": {
            "staticDir": os.path.join(project_dir, "storj", "web", "storagenode"),
        },
        "redis": {
            "url": "redis://localhost:6379",
        },
        "satellite-api": {
            "mailTemplateDir": os.path.join(project_dir, "storj", "web", "satellite", "static", "emails"),
            "staticDir": os.path.join(project_dir, "storj", "web", "satellite"),
        },
        "linksharing": {
            "webDir": os.path.join(project_dir, "gateway-mt", "pkg", "linksharing", "web"),
            "staticDir": os.path.join(project_dir, "gateway-mt", "pkg", "linksharing", "web", "static"),
        },
    }


class Standalone(Runtime):
    """Runs services as plain local processes, like storj-sim. No isolation."""

    def __init__(
        self,
        root_dir: str,
        project_dir: str,
        clean: bool = True,
        root_identity: RootIdentity | None = None,
        variables: dict[str, dict[str, str]] | None = None,
        grant_fetcher: GrantFetcher | None = None,
    ) -> None:
        super().__init__(root_dir)
        self.project_dir = project_dir
        self.clean = clean
        self.provisioner = IdentityProvisioner(root_identity=root_identity)
        self.variables = default_variables(root_dir, project_dir)
        if root_identity is not None:
            self.variables[ROOT_SERVICE]["identity"] = root_identity.node_id()
        for name, values in (variables or {}).items():
            self.variables.setdefault(name, {}).update(values)
        self.grant_fetcher: GrantFetcher = grant_fetcher or functools.partial(
            request_api_key, timeout_s=settings.http_timeout_s
        )

    def service_dir(self, instance: ServiceInstance) -> str:
        return os.path.join(self.root_dir, instance.name, str(instance.instance))

    def add_service(self, recipe: Recipe) -> Service:
        index = self.service_count(recipe.name)
        sid = ServiceInstance(recipe.name, index)
        service_dir = self.service_dir(sid)
        s = Service(
            sid,
            service_dir,
            labels=recipe.labels,
            render=lambda text: render(self, sid, text),
            image=recipe.image,
        )

        if self.clean:
            shutil.rmtree(service_dir, ignore_errors=True)
        os.makedirs(service_dir, exist_ok=True)

        config_file = os.path.join(service_dir, CONFIG_FILE)
        if recipe.has_label("storj"):
            self.provisioner.provision(service_dir, sid.name, sid.instance)
            if not os.path.exists(config_file):
                if recipe.command:
                    s.config = self._generate_config(recipe, sid, config_file)
            else:
                # Kept from an earlier run; it was commented when generated.
                s.config = _read_config(config_file)

        init_from_recipe(s, recipe)

        if recipe.has_label("storj"):
            s.add_flag(f"--config-dir={service_dir}")

        self.services.append(s)
        log_event("INFO", "Registered service", service_name=sid.name, instance=sid.instance)
        return s

    def _generate_config(self, recipe: Recipe, sid: ServiceInstance, config_file: str) -> list[str]:
        config_dir = os.path.dirname(config_file)
        args = [recipe.command[0], "setup", f"--config-dir={config_dir}"]
        if sid.name == "storagenode":
            args += ["--identity-dir", config_dir]

        try:
            proc = subprocess.run(args, stdout=subprocess.PIPE, stderr=subprocess.STDOUT, text=True, check=False)
        except OSError as e:
            raise SetupFailure(f"Could not run setup for {sid}: {e}", command=args) from e
        if proc.returncode != 0:
            log_event("ERROR", f"Setup exited with {proc.returncode}:\n{proc.stdout}", service_name=sid.name, instance=sid.instance)
            raise SetupFailure(f"Setup for {sid} exited with {proc.returncode}", command=args, output=proc.stdout)

        return comment_defaults(_read_config(config_file))

    def get(self, instance: ServiceInstance, key: str) -> str:
        if key == "identityDir":
            return self.service_dir(instance)
        if key == "accessGrant":
            return access_grant(self, self.grant_fetcher)
        return self.variables.get(instance.name, {}).get(key, "")

    def get_host(self, instance: ServiceInstance, host_kind: str) -> str:
        return LOCALHOST

    def get_port(self, instance: ServiceInstance, port_kind: str) -> int:
        return port_convention(instance, port_kind)

    def reload(self, stack: Stack) -> None:
        raise NotImplementedError("the standalone runtime cannot reload a running stack")

    def write(self) -> None:
        """Persist every service's config lines to its config.yaml."""
        for s in self.services:
            if not s.config:
                continue
            path = os.path.join(s.directory, CONFIG_FILE)
            with open(path, "w", encoding="utf-8") as f:
                f.write("\n".join(s.config).rstrip("\n") + "\n")

    def launch(self) -> list[tuple[Service, subprocess.Popen]]:
        """Start every service that has a command. Processes are not supervised."""
        started: list[tuple[Service, subprocess.Popen]] = []
        for s in self.services:
            if not s.command:
                continue
            proc = subprocess.Popen(s.command_line(), cwd=s.directory, env={**os.environ, **s.environment})
            log_event("INFO", f"Started pid {proc.pid}", service_name=s.id.name, instance=s.id.instance)
            started.append((s, proc))
        return started
