import io

import pytest

from kindling.container import ContainerCmd, ContainerCmder
from kindling.exec import Cmd, CommandError, combined_output_lines


class FakeCmd(Cmd):
    def __init__(self, name, args, output=b"", fail=False):
        super().__init__()
        self.name = name
        self.args = list(args)
        self.output = output
        self.fail = fail
        self.ran = False

    def run(self):
        self.ran = True
        if self.stdout is not None and self.output:
            self.stdout.write(self.output)
        if self.fail:
            raise CommandError([self.name, *self.args], 1)


class FakeCmder:
    def __init__(self, output=b"", fail=False):
        self.created = []
        self.output = output
        self.fail = fail

    def command(self, name, *args):
        cmd = FakeCmd(name, args, self.output, self.fail)
        self.created.append(cmd)
        return cmd


def test_command_runs_docker_exec_in_container():
    cmder = FakeCmder()
    ContainerCmder("node1", cmder).command("ls", "-l").run()
    assert len(cmder.created) == 1
    created = cmder.created[0]
    assert created.name == "docker"
    assert created.args == ["exec", "--privileged", "node1", "ls", "-l"]
    assert created.ran


def test_stdin_adds_interactive_flag_and_is_forwarded():
    cmder = FakeCmder()
    cmd = ContainerCmder("node1", cmder).command("cp", "/dev/stdin", "/x")
    source = io.BytesIO(b"data")
    cmd.stdin = source
    cmd.run()
    created = cmder.created[0]
    assert created.args[:3] == ["exec", "--privileged", "-i"]
    assert created.stdin is source


def test_env_entries_become_flags_before_container():
    cmder = FakeCmder()
    cmd = ContainerCmder("node1", cmder).command("env")
    cmd.env = ["A=1", "B=2"]
    cmd.run()
    args = cmder.created[0].args
    assert args[2:6] == ["-e", "A=1", "-e", "B=2"]
    assert args[-2:] == ["node1", "env"]


def test_unset_streams_are_not_forwarded():
    cmder = FakeCmder()
    ContainerCmder("node1", cmder).command("true").run()
    created = cmder.created[0]
    assert created.stdin is None
    assert created.stdout is None
    assert created.stderr is None


def test_output_lines_flow_through():
    cmder = FakeCmder(output=b"first\nsecond\n")
    cmd = ContainerCmder("node1", cmder).command("cat", "/kind/version")
    assert combined_output_lines(cmd) == ["first", "second"]


def test_failure_propagates():
    cmder = FakeCmder(fail=True)
    cmd = ContainerCmder("node1", cmder).command("false")
    with pytest.raises(CommandError):
        cmd.run()
    assert cmder.created[0].ran


def test_argv_matches_what_is_run():
    cmder = FakeCmder()
    cmd = ContainerCmd("abc", "echo", "hi", cmder=cmder)
    expected = cmd.argv
    cmd.run()
    assert cmder.created[0].args == expected