import io
import os
import stat

import pytest

from kindling import node
from kindling.constants import NODE_ROLE_KEY
from kindling.exec import Cmd, CommandError


class FakeCmd(Cmd):
    def __init__(self, cmder, argv):
        super().__init__()
        self.cmder = cmder
        self.argv = argv

    def run(self):
        self.cmder.calls.append(self.argv)
        if self.stdin is not None:
            data = self.stdin
            if not isinstance(data, (bytes, str)):
                data = data.read()
            self.cmder.stdins.append(data)
        output, code = self.cmder.handler(self.argv)
        if output and self.stdout is not None:
            self.stdout.write(output.encode("utf-8"))
        if code:
            raise CommandError(self.argv, code)


class FakeCmder:
    def __init__(self, handler):
        self.handler = handler
        self.calls = []
        self.stdins = []

    def command(self, name, *args):
        return FakeCmd(self, [name, *args])


def answering(output, code=0):
    return FakeCmder(lambda argv: (output, code))


def test_name_and_str():
    n = node.from_name("kind-control-plane")
    assert n.name == "kind-control-plane"
    assert str(n) == "kind-control-plane"
    assert n == node.Node("kind-control-plane")


def test_command_runs_through_docker_exec():
    fake = answering("")
    n = node.Node("kind-worker", cmder=fake)
    n.command("ls", "/").run()
    assert fake.calls == [["docker", "exec", "--privileged", "kind-worker", "ls", "/"]]


def test_kube_version_is_read_and_cached():
    fake = answering("v1.15.3\n")
    n = node.Node("n1", cmder=fake)
    assert n.kube_version() == "v1.15.3"
    assert n.kube_version() == "v1.15.3"
    assert len(fake.calls) == 1
    assert fake.calls[0][-2:] == ["cat", "/kind/version"]


def test_kube_version_rejects_multiple_lines():
    n = node.Node("n1", cmder=answering("a\nb\n"))
    with pytest.raises(RuntimeError, match="got 2 lines"):
        n.kube_version()


def test_kube_version_wraps_command_failure():
    n = node.Node("n1", cmder=answering("", code=1))
    with pytest.raises(RuntimeError, match="failed to get file") as info:
        n.kube_version()
    assert isinstance(info.value.__cause__, CommandError)


def test_ip_is_parsed_and_cached():
    fake = answering("172.17.0.2,fc00::2\n")
    n = node.Node("n1", cmder=fake)
    assert n.ip() == ("172.17.0.2", "fc00::2")
    assert n.ip() == ("172.17.0.2", "fc00::2")
    assert len(fake.calls) == 1
    assert fake.calls[0][:3] == ["docker", "inspect", "-f"]
    assert fake.calls[0][-1] == "n1"


def test_ip_without_ipv6_is_not_cached():
    fake = answering("172.17.0.2,\n")
    n = node.Node("n1", cmder=fake)
    assert n.ip() == ("172.17.0.2", "")
    n.ip()
    assert len(fake.calls) == 2


def test_ip_rejects_wrong_value_count():
    n = node.Node("n1", cmder=answering("a,b,c\n"))
    with pytest.raises(RuntimeError, match="2 values, got 3"):
        n.ip()


def test_ports_parsed_and_cached():
    fake = answering("32768\n")
    n = node.Node("n1", cmder=fake)
    assert n.ports(6443) == 32768
    assert n.ports(6443) == 32768
    assert len(fake.calls) == 1
    assert '"6443/tcp"' in fake.calls[0][3]


def test_ports_rejects_non_number():
    n = node.Node("n1", cmder=answering("nope\n"))
    with pytest.raises(RuntimeError):
        n.ports(6443)


def test_role_strips_quotes():
    fake = answering("'worker'\n")
    n = node.Node("n1", cmder=fake)
    assert n.role() == "worker"
    assert NODE_ROLE_KEY in fake.calls[0][3]
    n.role()
    assert len(fake.calls) == 1


def test_role_failure_wrapped():
    n = node.Node("n1", cmder=answering("", code=2))
    with pytest.raises(RuntimeError, match=NODE_ROLE_KEY):
        n.role()


def test_write_file_creates_directory_then_copies_stdin():
    fake = answering("")
    n = node.Node("n1", cmder=fake)
    n.write_file("/kind/dir/file.txt", "hello")
    assert fake.calls[0] == [
        "docker", "exec", "--privileged", "n1", "mkdir", "-p", "/kind/dir",
    ]
    assert fake.calls[1] == [
        "docker", "exec", "--privileged", "-i", "n1",
        "cp", "/dev/stdin", "/kind/dir/file.txt",
    ]
    assert fake.stdins == [b"hello"]


def test_write_file_directory_failure():
    n = node.Node("n1", cmder=answering("", code=1))
    with pytest.raises(RuntimeError, match="failed to create directory"):
        n.write_file("/a/b", "x")


def test_image_id_reads_status_id():
    fake = answering('{"status": {"id": "sha256:abc"}}')
    n = node.Node("n1", cmder=fake)
    assert n.image_id("alpine") == "sha256:abc"
    assert fake.calls[0][-3:] == ["crictl", "inspecti", "alpine"]


def test_image_id_propagates_failure():
    n = node.Node("n1", cmder=answering("", code=1))
    with pytest.raises(CommandError):
        n.image_id("alpine")


def test_load_image_archive_pipes_stdin():
    fake = answering("")
    n = node.Node("n1", cmder=fake)
    n.load_image_archive(io.BytesIO(b"tarball"))
    assert fake.stdins == [b"tarball"]
    assert fake.calls[0][-5:] == ["ctr", "--namespace=k8s.io", "images", "import", "-"]


def test_load_image_archive_failure_wrapped():
    n = node.Node("n1", cmder=answering("", code=1))
    with pytest.raises(RuntimeError, match="failed to load image"):
        n.load_image_archive(b"x")


def test_enable_ipv6_runs_both_sysctls():
    fake = answering("")
    node.Node("n1", cmder=fake).enable_ipv6()
    assert [call[-1] for call in fake.calls] == [
        "net.ipv6.conf.all.disable_ipv6=0",
        "net.ipv6.conf.all.forwarding=1",
    ]


def test_enable_ipv6_forwarding_failure():
    fake = FakeCmder(lambda argv: ("", 1 if "forwarding" in argv[-1] else 0))
    with pytest.raises(RuntimeError, match="failed to enable ipv6 forwarding"):
        node.Node("n1", cmder=fake).enable_ipv6()


def test_copy_to_and_from():
    fake = answering("")
    n = node.Node("n1", cmder=fake)
    n.copy_to("/host/a", "/node/b")
    n.copy_from("/node/c", "/host/d")
    assert fake.calls == [
        ["docker", "cp", "/host/a", "n1:/node/b"],
        ["docker", "cp", "n1:/node/c", "/host/d"],
    ]


PROXY_NAMES = ["HTTP_PROXY", "HTTPS_PROXY", "NO_PROXY"]


@pytest.fixture
def no_proxy_env(monkeypatch):
    for name in PROXY_NAMES:
        monkeypatch.delenv(name, raising=False)
        monkeypatch.delenv(name.lower(), raising=False)
    return monkeypatch


@pytest.fixture
def fake_docker(tmp_path, no_proxy_env):
    def install(output):
        script = tmp_path / "docker"
        script.write_text(f"#!/bin/sh\nprintf '%s\\n' '{output}'\n")
        script.chmod(script.stat().st_mode | stat.S_IEXEC)
        no_proxy_env.setenv("PATH", str(tmp_path) + os.pathsep + os.environ["PATH"])

    return install


def test_get_proxy_details_without_proxies(no_proxy_env):
    assert node.get_proxy_details() == {}


def test_get_subnets_splits_output(fake_docker):
    fake_docker("10.0.0.0/8 172.17.0.0/16 ")
    assert node.get_subnets("bridge") == ["10.0.0.0/8", "172.17.0.0/16"]


def test_get_proxy_details_with_lowercase_proxy(fake_docker, no_proxy_env):
    fake_docker("172.17.0.0/16 ")
    no_proxy_env.setenv("http_proxy", "http://proxy.example.com:3128")
    details = node.get_proxy_details()
    assert details["HTTP_PROXY"] == "http://proxy.example.com:3128"
    assert details["http_proxy"] == "http://proxy.example.com:3128"
    assert details["NO_PROXY"] == details["no_proxy"]
    assert details["NO_PROXY"].startswith("172.17.0.0/16,")


def test_get_proxy_details_appends_existing_no_proxy(fake_docker, no_proxy_env):
    fake_docker("172.17.0.0/16 ")
    no_proxy_env.setenv("HTTPS_PROXY", "http://proxy.example.com:3128")
    no_proxy_env.setenv("NO_PROXY", "localhost")
    details = node.get_proxy_details()
    assert details["NO_PROXY"] == "172.17.0.0/16,localhost"
    assert details["https_proxy"] == "http://proxy.example.com:3128"