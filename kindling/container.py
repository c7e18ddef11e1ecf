"""Running commands inside docker containers through ``docker exec``."""

from __future__ import annotations

from typing import Any

from kindling.exec import Cmd
from kindling.exec import command as _local_command


class ContainerCmder:
    """Creates commands that run inside one container.

    ``cmder`` creates the ``docker`` command on the host; by default the
    local command factory is used.
    """

    def __init__(self, name_or_id: str, cmder: Any = None) -> None:
        self.name_or_id = name_or_id
        self._cmder = cmder

    def command(self, command: str, *args: str) -> ContainerCmd:
        """Return a command that runs ``command args...`` in the container."""
        return ContainerCmd(self.name_or_id, command, *args, cmder=self._cmder)


class ContainerCmd(Cmd):
    """A command run inside a container with ``docker exec --privileged``."""

    def __init__(
        self, name_or_id: str, command: str, *args: str, cmder: Any = None
    ) -> None:
        super().__init__()
        self.name_or_id = name_or_id
        self.command = command
        self.args = list(args)
        self._cmder = cmder

    @property
    def argv(self) -> list[str]:
        """The arguments handed to ``docker``."""
        argv = ["exec", "--privileged"]
        if self.stdin is not None:
            argv.append("-i")
        for entry in self.env or ():
            argv.extend(["-e", entry])
        argv.extend([self.name_or_id, self.command, *self.args])
        return argv

    def run(self) -> None:
        """Run the command in the container, raising CommandError on failure."""
        argv = self.argv
        if self._cmder is not None:
            cmd = self._cmder.command("docker", *argv)
        else:
            cmd = _local_command("docker", *argv)
        if self.stdin is not None:
            cmd.stdin = self.stdin
        if self.stderr is not None:
            cmd.stderr = self.stderr
        if self.stdout is not None:
            cmd.stdout = self.stdout
        cmd.run()