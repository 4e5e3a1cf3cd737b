from __future__ import annotations

import functools
import os
import shutil

import docker

from . import docker_ops
from .credentials import access_grant, request_api_key
from .db import log_event
from .docker_ops import ContainerRef
from .errors import ClusterError, PortUnknown
from .identity import ROOT_SERVICE, IdentityProvisioner, RootIdentity
from .ports import LOCALHOST, port_convention, unique_host
from .recipe import Recipe, Stack
from .render import render
from .runtime import Runtime, Service, ServiceInstance, init_from_recipe
from .settings import settings
from .standalone import GrantFetcher

# Where each service directory is mounted inside its container.
CONTAINER_DIR = "/var/lib/lcr"

_PORT_KINDS = ("public", "private", "console", "debug")


def default_variables() -> dict[str, dict[str, str]]:
    return {
        "cockroach": {
            "main": "cockroach://root@cockroach:26257/master?sslmode=disable",
            "metainfo": "cockroach://root@cockroach:26257/metainfo?sslmode=disable",
            "dir": "/cockroach/cockroach-data",
        },
        "redis": {
            "url": "redis://redis:6379",
        },
    }


class ContainerRuntime(Runtime):
    """One Docker container per service instance, on a shared bridge network.

    Addressing follows the same conventions as ``Standalone``: ports come from
    ``port_convention`` and are published unchanged on the host.
    """

    def __init__(
        self,
        root_dir: str,
        clean: bool = True,
        network: str | None = None,
        client: docker.DockerClient | None = None,
        root_identity: RootIdentity | None = None,
        variables: dict[str, dict[str, str]] | None = None,
        grant_fetcher: GrantFetcher | None = None,
    ) -> None:
        super().__init__(root_dir)
        self.clean = clean
        self.network = network or settings.docker_network
        self._client = client
        self.provisioner = IdentityProvisioner(root_identity=root_identity)
        self.variables = default_variables()
        if root_identity is not None:
            self.variables.setdefault(ROOT_SERVICE, {})["identity"] = root_identity.node_id()
        for name, values in (variables or {}).items():
            self.variables.setdefault(name, {}).update(values)
        self.grant_fetcher: GrantFetcher = grant_fetcher or functools.partial(
            request_api_key, timeout_s=settings.http_timeout_s
        )
        self.containers: list[ContainerRef] = []

    @property
    def client(self) -> docker.DockerClient:
        if self._client is None:
            self._client = docker_ops.client_from_env()
        return self._client

    def service_dir(self, instance: ServiceInstance) -> str:
        return os.path.join(self.root_dir, instance.name, str(instance.instance))

    def add_service(self, recipe: Recipe) -> Service:
        docker_ops.validate_service_name(recipe.name)
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

        if recipe.has_label("storj"):
            self.provisioner.provision(service_dir, sid.name, sid.instance)

        init_from_recipe(s, recipe)

        if recipe.has_label("storj"):
            s.add_flag(f"--config-dir={CONTAINER_DIR}")

        self.services.append(s)
        log_event("INFO", "Registered service", service_name=sid.name, instance=sid.instance)
        return s

    def get(self, instance: ServiceInstance, key: str) -> str:
        if key == "identityDir":
            return CONTAINER_DIR
        if key == "accessGrant":
            return access_grant(self, self.grant_fetcher)
        return self.variables.get(instance.name, {}).get(key, "")

    def get_host(self, instance: ServiceInstance, host_kind: str) -> str:
        if host_kind == "internal":
            return unique_host(instance)
        return LOCALHOST

    def get_port(self, instance: ServiceInstance, port_kind: str) -> int:
        return port_convention(instance, port_kind)

    def reload(self, stack: Stack) -> None:
        """Rebuild the registry from ``stack``, in stack order."""
        self.services = []
        for recipe in stack.services:
            self.add_service(recipe)

    def _published_ports(self, instance: ServiceInstance) -> dict[str, int]:
        ports: dict[str, int] = {}
        for kind in _PORT_KINDS:
            try:
                port = port_convention(instance, kind)
            except PortUnknown:
                continue
            ports[f"{port}/tcp"] = port
        return ports

    def launch(self) -> list[ContainerRef]:
        """Start a container for every service that names an image."""
        if not docker_ops.docker_available(self.client):
            raise ClusterError("Docker is not available. Start the docker daemon and try again.")
        docker_ops.ensure_network(self.client, self.network)

        for s in self.services:
            if not s.image:
                log_event("WARN", "No image, not started", service_name=s.id.name, instance=s.id.instance)
                continue
            ref = docker_ops.create_service_container(
                self.client,
                service=s.id.name,
                instance=s.id.instance,
                hostname=self.get_host(s.id, "internal"),
                image=s.image,
                network=self.network,
                env=s.environment,
                command=s.command_line(),
                volumes={os.path.abspath(s.directory): {"bind": CONTAINER_DIR, "mode": "rw"}},
                ports=self._published_ports(s.id),
            )
            self.containers.append(ref)
        return list(self.containers)

    def stop(self) -> None:
        """Remove every container this cluster started, including earlier runs."""
        for ref in docker_ops.list_containers(self.client):
            docker_ops.remove_container(self.client, ref.id)
        self.containers = []
