import os

import pytest
from docker.errors import DockerException, NotFound

from lcr.container import CONTAINER_DIR, ContainerRuntime
from lcr.docker_ops import INSTANCE_LABEL, SERVICE_LABEL
from lcr.errors import ClusterError
from lcr.recipe import Recipe, Stack
from lcr.runtime import ServiceInstance


class _Container:
    def __init__(self, cid, name, labels):
        self.id = cid
        self.name = name
        self.labels = labels
        self.removed = False

    def remove(self, force=False):
        self.removed = True


class _Containers:
    def __init__(self):
        self.runs = []
        self.by_id = {}

    def run(self, image, **kwargs):
        c = _Container(f"c{len(self.runs)}", kwargs["name"], kwargs["labels"])
        self.runs.append((image, kwargs))
        self.by_id[c.id] = c
        return c

    def get(self, cid):
        c = self.by_id.get(cid)
        if c is None or c.removed:
            raise NotFound("no such container")
        return c

    def list(self, all=False, filters=None):
        return [c for c in self.by_id.values() if not c.removed]


class _Networks:
    def __init__(self):
        self.created = []

    def get(self, name):
        if name not in self.created:
            raise NotFound("no such network")

    def create(self, name, driver=None):
        self.created.append(name)


class FakeDocker:
    def __init__(self, up=True):
        self.up = up
        self.containers = _Containers()
        self.networks = _Networks()

    def ping(self):
        if not self.up:
            raise DockerException("daemon down")
        return True


@pytest.fixture
def client():
    return FakeDocker()


def test_add_service_and_addressing(tmp_path, client):
    rt = ContainerRuntime(str(tmp_path / "root"), client=client, network="testnet")
    rt.add_service(Recipe(name="satellite-api", labels=["storj"], image="img/sat"))
    n0 = rt.add_service(Recipe(name="storagenode", labels=["storj"], image="img/sn"))
    n1 = rt.add_service(
        Recipe(
            name="storagenode",
            labels=["storj"],
            image="img/sn",
            flags=['--contact.external-address={{ Host "internal" }}:{{ Port "public" }}'],
            environment={"SAT": '{{ Host "satellite-api" "internal" }}:{{ Port "satellite-api" "public" }}'},
        )
    )

    assert [str(s.id) for s in rt.get_services()] == ["satellite-api/0", "storagenode/0", "storagenode/1"]
    assert rt.get_host(n0.id, "internal") == "storagenode"
    assert rt.get_host(n1.id, "internal") == "storagenode2"
    assert rt.get_host(n1.id, "external") == "localhost"
    assert n1.flags == ["--contact.external-address=storagenode2:30010", f"--config-dir={CONTAINER_DIR}"]
    assert n1.environment == {"SAT": "satellite-api:7777"}
    assert (tmp_path / "root" / "storagenode" / "1" / "identity.cert").exists()


def test_get_variables(tmp_path, client):
    rt = ContainerRuntime(
        str(tmp_path), client=client, variables={"x": {"a": "b"}}, grant_fetcher=lambda addr, console: f"{addr}|{console}"
    )
    assert rt.get(ServiceInstance("redis", 0), "url") == "redis://redis:6379"
    assert rt.get(ServiceInstance("x", 1), "a") == "b"
    assert rt.get(ServiceInstance("x", 1), "nope") == ""
    assert rt.get(ServiceInstance("storagenode", 0), "identityDir") == CONTAINER_DIR
    assert rt.get(ServiceInstance("uplink", 0), "accessGrant") == "@localhost:7777|http://localhost:10000"


def test_invalid_service_name(tmp_path, client):
    rt = ContainerRuntime(str(tmp_path), client=client)
    with pytest.raises(ValueError):
        rt.add_service(Recipe(name="Bad_Name"))


def test_launch_creates_labelled_containers(tmp_path, client):
    rt = ContainerRuntime(str(tmp_path / "root"), client=client, network="testnet")
    rt.add_service(Recipe(name="redis", image="redis:7", command=["redis-server"]))
    rt.add_service(Recipe(name="storagenode", labels=["storj"], image="img/sn"))
    rt.add_service(Recipe(name="storagenode", labels=["storj"], image="img/sn"))
    rt.add_service(Recipe(name="helper"))

    refs = rt.launch()
    assert client.networks.created == ["testnet"]
    assert [r.name for r in refs] == ["lcr-redis", "lcr-storagenode", "lcr-storagenode2"]

    image, kw = client.containers.runs[0]
    assert image == "redis:7"
    assert kw["command"] == ["redis-server"]
    assert kw["ports"] == {"6379/tcp": 6379}
    assert kw["network"] == "testnet"

    _, kw = client.containers.runs[2]
    assert kw["labels"] == {SERVICE_LABEL: "storagenode", INSTANCE_LABEL: "1"}
    assert kw["hostname"] == "storagenode2"
    assert kw["ports"] == {"30010/tcp": 30010, "30011/tcp": 30011, "30012/tcp": 30012, "30019/tcp": 30019}
    assert kw["volumes"] == {
        os.path.abspath(str(tmp_path / "root" / "storagenode" / "1")): {"bind": CONTAINER_DIR, "mode": "rw"}
    }
    assert kw["command"] == [f"--config-dir={CONTAINER_DIR}"]

    rt.stop()
    assert all(c.removed for c in client.containers.by_id.values())
    assert rt.containers == []


def test_launch_without_docker(tmp_path):
    rt = ContainerRuntime(str(tmp_path), client=FakeDocker(up=False))
    rt.add_service(Recipe(name="redis", image="redis:7"))
    with pytest.raises(ClusterError):
        rt.launch()


def test_reload_rebuilds_registry(tmp_path, client):
    rt = ContainerRuntime(str(tmp_path), client=client)
    rt.add_service(Recipe(name="storagenode"))
    rt.add_service(Recipe(name="storagenode"))
    rt.reload(Stack(services=[Recipe(name="redis"), Recipe(name="storagenode")]))
    assert [str(s.id) for s in rt.get_services()] == ["redis/0", "storagenode/0"]
