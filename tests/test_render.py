import pytest

from lcr.errors import PortUnknown, RenderError
from lcr.recipe import Recipe
from lcr.render import render
from lcr.runtime import ServiceInstance
from lcr.standalone import Standalone


@pytest.fixture
def rt(tmp_path):
    return Standalone(str(tmp_path / "root"), "/src", variables={"satellite-api": {"identity": "abc"}})


def test_render_own_instance(rt):
    sid = ServiceInstance("storagenode", 2)
    out = render(rt, sid, 'server.address: {{ Host "external" }}:{{Port "public"}}')
    assert out == "server.address: localhost:30020"


def test_render_cross_service_reference(rt):
    sid = ServiceInstance("storagenode", 0)
    out = render(
        rt,
        sid,
        'storage.whitelisted-satellites: {{ Get "satellite-api" "identity" }}@{{ Host "satellite-api" "external" }}:{{ Port "satellite-api/0" "public" }}',
    )
    assert out == "storage.whitelisted-satellites: abc@localhost:7777"


def test_render_variables_default_to_empty(rt):
    assert render(rt, ServiceInstance("redis", 0), '[{{ Get "nothing" }}]') == "[]"
    assert render(rt, ServiceInstance("redis", 0), '{{ Get "url" }}') == "redis://localhost:6379"


def test_render_leaves_plain_text_alone(rt):
    text = "no placeholders here: {not one}"
    assert render(rt, ServiceInstance("redis", 0), text) == text


def test_render_observes_state_changes(rt):
    sid = ServiceInstance("satellite-api", 0)
    assert render(rt, sid, '{{ Get "identity" }}') == "abc"
    rt.variables["satellite-api"]["identity"] = "def"
    assert render(rt, sid, '{{ Get "identity" }}') == "def"


def test_service_render_closes_over_its_own_id(rt):
    s0 = rt.add_service(Recipe(name="storagenode"))
    s1 = rt.add_service(Recipe(name="storagenode"))
    assert s0.render('{{ Port "public" }}') == "30000"
    assert s1.render('{{ Port "public" }}') == "30010"


def test_render_errors(rt):
    sid = ServiceInstance("redis", 0)
    with pytest.raises(RenderError):
        render(rt, sid, '{{ Shell "rm" }}')
    with pytest.raises(RenderError):
        render(rt, sid, '{{ Port "a" "b" "c" }}')
    with pytest.raises(RenderError, match="invalid service reference"):
        render(rt, sid, '{{ Port "sn/x" "public" }}')
    with pytest.raises(PortUnknown):
        render(rt, sid, '{{ Port "debug" }}')
