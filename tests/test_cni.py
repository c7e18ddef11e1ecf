import json

import pytest

from kindling.cni import (
    CNIConfigInputs,
    CNIConfigWriter,
    compute_cni_config_inputs,
    internal_ip,
    make_nodes_reconciler,
    render_cni_config,
)


def make_node(name, ip=None, pod_cidr=None):
    node = {"metadata": {"name": name}, "spec": {}, "status": {"addresses": []}}
    if ip is not None:
        node["status"]["addresses"] = [
            {"type": "Hostname", "address": name},
            {"type": "InternalIP", "address": ip},
        ]
    if pod_cidr is not None:
        node["spec"]["podCIDR"] = pod_cidr
    return node


def test_ipv4_default_route():
    inputs = compute_cni_config_inputs(make_node("a", "10.0.0.2", "10.244.1.0/24"))
    assert inputs == CNIConfigInputs(pod_cidr="10.244.1.0/24", default_route="0.0.0.0/0")


def test_ipv6_default_route():
    inputs = compute_cni_config_inputs(make_node("a", "fc00::2", "fd00:10:244::/64"))
    assert inputs.default_route == "::/0"
    assert inputs.pod_cidr == "fd00:10:244::/64"


def test_render_is_json_with_inputs():
    inputs = CNIConfigInputs(pod_cidr="10.244.2.0/24", default_route="0.0.0.0/0")
    config = json.loads(render_cni_config(inputs))
    assert config["name"] == "kindnet"
    ptp, portmap = config["plugins"]
    assert ptp["type"] == "ptp"
    assert ptp["ipam"]["routes"][0]["dst"] == inputs.default_route
    assert ptp["ipam"]["ranges"][0][0]["subnet"] == inputs.pod_cidr
    assert portmap["capabilities"]["portMappings"] is True


def test_writer_writes_rendered_config(tmp_path):
    path = tmp_path / "net.conflist"
    writer = CNIConfigWriter(str(path))
    inputs = CNIConfigInputs(pod_cidr="10.244.0.0/24", default_route="0.0.0.0/0")
    writer.write(inputs)
    assert path.read_text(encoding="utf-8") == render_cni_config(inputs)
    assert writer.last_inputs == inputs
    assert not (tmp_path / "net.conflist.temp").exists()


def test_writer_skips_unchanged_inputs(tmp_path):
    path = tmp_path / "net.conflist"
    writer = CNIConfigWriter(str(path))
    inputs = CNIConfigInputs(pod_cidr="10.244.0.0/24", default_route="0.0.0.0/0")
    writer.write(inputs)
    path.write_text("marker", encoding="utf-8")
    writer.write(inputs)
    assert path.read_text(encoding="utf-8") == "marker"

    changed = CNIConfigInputs(pod_cidr="10.244.5.0/24", default_route="0.0.0.0/0")
    writer.write(changed)
    assert path.read_text(encoding="utf-8") == render_cni_config(changed)


def test_writer_empty_inputs_are_a_no_op(tmp_path):
    path = tmp_path / "net.conflist"
    CNIConfigWriter(str(path)).write(CNIConfigInputs())
    assert not path.exists()


def test_writer_missing_directory_raises(tmp_path):
    writer = CNIConfigWriter(str(tmp_path / "missing" / "net.conflist"))
    inputs = CNIConfigInputs(pod_cidr="10.244.0.0/24", default_route="0.0.0.0/0")
    with pytest.raises(OSError):
        writer.write(inputs)
    assert writer.last_inputs == CNIConfigInputs()


def test_internal_ip():
    assert internal_ip(make_node("a", "10.0.0.3")) == "10.0.0.3"
    assert internal_ip(make_node("a")) is None


def test_reconciler_routes_and_writes(tmp_path):
    path = tmp_path / "net.conflist"
    writer = CNIConfigWriter(str(path))
    routes = []
    reconcile = make_nodes_reconciler(
        writer, "10.0.0.2", lambda ip, cidr: routes.append((ip, cidr))
    )
    own = make_node("own", "10.0.0.2", "10.244.0.0/24")
    reconcile(
        {
            "items": [
                own,
                make_node("other", "10.0.0.3", "10.244.1.0/24"),
                make_node("no-ip", None, "10.244.2.0/24"),
                make_node("no-cidr", "10.0.0.5"),
            ]
        }
    )
    assert routes == [("10.0.0.3", "10.244.1.0/24")]
    assert path.read_text(encoding="utf-8") == render_cni_config(
        compute_cni_config_inputs(own)
    )


def test_reconciler_accepts_plain_iterable_and_stops_on_error(tmp_path):
    writer = CNIConfigWriter(str(tmp_path / "net.conflist"))
    seen = []

    def failing_route(ip, cidr):
        seen.append(ip)
        raise RuntimeError("route failed")

    reconcile = make_nodes_reconciler(writer, "10.0.0.2", failing_route)
    nodes = [
        make_node("b", "10.0.0.3", "10.244.1.0/24"),
        make_node("c", "10.0.0.4", "10.244.2.0/24"),
    ]
    with pytest.raises(RuntimeError):
        reconcile(nodes)
    assert seen == ["10.0.0.3"]