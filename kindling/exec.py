"""Running commands locally, with helpers for capturing and streaming output."""

from __future__ import annotations

import abc
import io
import logging
import os
import subprocess
import sys
import threading
from collections.abc import Callable, Iterable, Sequence
from typing import IO, Any

logger = logging.getLogger(__name__)


class CommandError(Exception):
    """A command could not be started or exited unsuccessfully."""

    def __init__(
        self,
        argv: Sequence[str],
        returncode: int | None = None,
        reason: str | None = None,
    ) -> None:
        self.argv = list(argv)
        self.returncode = returncode
        self.reason = reason
        self.output: list[str] = []
        shown = " ".join(self.argv)
        if reason is not None:
            message = f"command {shown!r} failed: {reason}"
        else:
            message = f"command {shown!r} failed with exit code {returncode}"
        super().__init__(message)


class Cmd(abc.ABC):
    """A command that can be run somewhere.

    ``env`` is a list of ``"key=value"`` entries replacing the environment,
    ``stdin`` a readable stream (or bytes / str), ``stdout`` and ``stderr``
    writable streams. Unset streams are connected to the null device.
    """

    def __init__(self) -> None:
        self.env: list[str] | None = None
        self.stdin: Any = None
        self.stdout: Any = None
        self.stderr: Any = None

    @abc.abstractmethod
    def run(self) -> None:
        """Run the command, raising CommandError if it fails."""


def _fileno(stream: Any) -> int | None:
    try:
        return stream.fileno()
    except (AttributeError, OSError, ValueError):
        return None


def _flush(stream: Any) -> None:
    flush = getattr(stream, "flush", None)
    if flush is not None:
        try:
            flush()
        except (OSError, ValueError):
            pass


def _write(stream: Any, data: bytes) -> None:
    if not data:
        return
    if isinstance(stream, io.TextIOBase):
        stream.write(data.decode("utf-8", errors="replace"))
        return
    try:
        stream.write(data)
    except TypeError:
        stream.write(data.decode("utf-8", errors="replace"))


def _output_target(stream: Any) -> tuple[Any, bool]:
    """Return the subprocess argument for a stream and whether it needs capturing."""
    if stream is None:
        return subprocess.DEVNULL, False
    fd = _fileno(stream)
    if fd is not None:
        _flush(stream)
        return fd, False
    return subprocess.PIPE, True


def _input_source(stream: Any) -> tuple[Any, bytes | None]:
    if stream is None:
        return subprocess.DEVNULL, None
    if isinstance(stream, (bytes, bytearray)):
        return subprocess.PIPE, bytes(stream)
    if isinstance(stream, str):
        return subprocess.PIPE, stream.encode("utf-8")
    fd = _fileno(stream)
    if fd is not None:
        return fd, None
    data = stream.read()
    if isinstance(data, str):
        data = data.encode("utf-8")
    return subprocess.PIPE, data


def _environment(env: Iterable[str] | None) -> dict[str, str] | None:
    if env is None:
        return None
    result: dict[str, str] = {}
    for entry in env:
        key, _, value = entry.partition("=")
        result[key] = value
    return result


class LocalCmd(Cmd):
    """A command run as a process on this machine."""

    def __init__(self, name: str, *args: str) -> None:
        super().__init__()
        self.name = name
        self.args = list(args)

    @property
    def argv(self) -> list[str]:
        return [self.name, *self.args]

    def run(self) -> None:
        argv = self.argv
        logger.debug("Running: %s %s", self.name, argv)

        stdin_arg, input_data = _input_source(self.stdin)
        stdout_arg, capture_out = _output_target(self.stdout)
        if self.stdout is not None and self.stdout is self.stderr:
            stderr_arg = subprocess.STDOUT if capture_out else stdout_arg
            capture_err = False
        else:
            stderr_arg, capture_err = _output_target(self.stderr)

        try:
            process = subprocess.Popen(
                argv,
                stdin=stdin_arg,
                stdout=stdout_arg,
                stderr=stderr_arg,
                env=_environment(self.env),
            )
        except OSError as exc:
            raise CommandError(argv, reason=str(exc)) from exc

        with process:
            out, err = process.communicate(input_data)

        if capture_out:
            _write(self.stdout, out or b"")
        if capture_err:
            _write(self.stderr, err or b"")

        if process.returncode != 0:
            raise CommandError(argv, process.returncode)


class LocalCmder:
    """Creates commands that run on this machine."""

    def command(self, name: str, *args: str) -> LocalCmd:
        return LocalCmd(name, *args)


DEFAULT_CMDER = LocalCmder()


def command(name: str, *args: str) -> Cmd:
    """Create a command with the default cmder."""
    return DEFAULT_CMDER.command(name, *args)


def _split_lines(data: bytes) -> list[str]:
    if not data:
        return []
    pieces = data.split(b"\n")
    if pieces[-1] == b"":
        pieces.pop()
    return [
        (piece[:-1] if piece.endswith(b"\r") else piece).decode("utf-8", errors="replace")
        for piece in pieces
    ]


def combined_output_lines(cmd: Cmd) -> list[str]:
    """Run cmd and return its combined stdout and stderr as lines.

    On failure the raised CommandError carries the lines in ``output``.
    """
    buffer = io.BytesIO()
    cmd.stdout = buffer
    cmd.stderr = buffer
    try:
        cmd.run()
    except CommandError as exc:
        exc.output = _split_lines(buffer.getvalue())
        raise
    return _split_lines(buffer.getvalue())


def inherit_output(cmd: Cmd) -> Cmd:
    """Send cmd's output to this process's stdout and stderr."""
    cmd.stderr = sys.stderr
    cmd.stdout = sys.stdout
    return cmd


def run_logging_output_on_fail(cmd: Cmd) -> None:
    """Run cmd, logging its output as errors if it fails."""
    buffer = io.BytesIO()
    cmd.stdout = buffer
    cmd.stderr = buffer
    try:
        cmd.run()
    except CommandError:
        logger.error("failed with:")
        for line in _split_lines(buffer.getvalue()):
            logger.error(line)
        raise


def run_with_stdout_reader(cmd: Cmd, reader_func: Callable[[IO[bytes]], None]) -> None:
    """Run cmd with its stdout piped to reader_func, called on another thread."""
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    writer = os.fdopen(write_fd, "wb")
    errors: list[BaseException] = []

    def consume() -> None:
        try:
            reader_func(reader)
        except BaseException as exc:  # re-raised on the calling thread
            errors.append(exc)
        finally:
            reader.close()

    thread = threading.Thread(target=consume, daemon=True)
    cmd.stdout = writer
    thread.start()
    try:
        cmd.run()
    finally:
        writer.close()
        thread.join()
        reader.close()
    if errors:
        raise errors[0]


def run_with_stdin_writer(cmd: Cmd, writer_func: Callable[[IO[bytes]], None]) -> None:
    """Run cmd with stdin fed by writer_func, called on another thread."""
    read_fd, write_fd = os.pipe()
    reader = os.fdopen(read_fd, "rb")
    writer = os.fdopen(write_fd, "wb")
    errors: list[BaseException] = []

    def produce() -> None:
        try:
            writer_func(writer)
        except BaseException as exc:  # re-raised on the calling thread
            errors.append(exc)
        finally:
            try:
                writer.close()
            except OSError:
                pass

    thread = threading.Thread(target=produce, daemon=True)
    cmd.stdin = reader
    thread.start()
    try:
        cmd.run()
    finally:
        reader.close()
        thread.join()
    if errors:
        raise errors[0]