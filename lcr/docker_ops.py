from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Any

import docker
from docker.errors import DockerException, NotFound

from .db import log_event

SERVICE_NAME_RE = re.compile(r"^[a-z][a-z0-9\-]{0,62}$")

SERVICE_LABEL = "lcr.service"
INSTANCE_LABEL = "lcr.instance"


def validate_service_name(name: str) -> None:
    if not SERVICE_NAME_RE.match(name):
        raise ValueError(
            "Invalid service name. Use lowercase letters/numbers and hyphen, starting with a letter (max 63 chars)."
        )


@dataclass(frozen=True)
class ContainerRef:
    id: str
    name: str


def client_from_env() -> docker.DockerClient:
    return docker.from_env()


def docker_available(client: docker.DockerClient) -> bool:
    try:
        client.ping()
        return True
    except DockerException:
        return False


def ensure_network(client: docker.DockerClient, network: str) -> None:
    try:
        client.networks.get(network)
    except NotFound:
        client.networks.create(network, driver="bridge")
        log_event("INFO", f"Created docker network '{network}'.")


def create_service_container(
    client: docker.DockerClient,
    service: str,
    instance: int,
    hostname: str,
    image: str,
    network: str,
    env: dict[str, str] | None = None,
    command: list[str] | None = None,
    volumes: dict[str, dict[str, str]] | None = None,
    ports: dict[str, int] | None = None,
) -> ContainerRef:
    """Create and start one service container attached to the cluster network.

    Containers are labeled so they can be re-discovered and torn down later.
    """
    validate_service_name(service)

    labels: dict[str, str] = {
        SERVICE_LABEL: service,
        INSTANCE_LABEL: str(instance),
    }

    container = client.containers.run(
        image,
        command=command or None,
        detach=True,
        name=f"lcr-{hostname}",
        hostname=hostname,
        environment=env or {},
        network=network,
        labels=labels,
        volumes=volumes or {},
        ports=ports or {},
        # No supervision: a crashed service stays down.
        restart_policy={"Name": "no"},
    )

    log_event("INFO", f"Started container lcr-{hostname} from image {image}", service_name=service, instance=instance)
    return ContainerRef(id=container.id, name=container.name)


def remove_container(client: docker.DockerClient, container_id: str, force: bool = True) -> None:
    try:
        cont = client.containers.get(container_id)
        cont.remove(force=force)
    except NotFound:
        return


def list_containers(client: docker.DockerClient, service: str | None = None) -> list[ContainerRef]:
    filters: dict[str, Any] = {"label": [SERVICE_LABEL]}
    if service:
        filters["label"] = [f"{SERVICE_LABEL}={service}"]

    containers = client.containers.list(all=True, filters=filters)
    return [ContainerRef(id=x.id, name=x.name) for x in containers]
