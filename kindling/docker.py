"""Helpers wrapping the docker command line."""

from __future__ import annotations

import logging
import time

from kindling.exec import CommandError, combined_output_lines, command

logger = logging.getLogger(__name__)


def split_image(image: str) -> tuple[str, str]:
    """Split an image reference into (registry, tag).

    The implicit ``latest`` tag is made explicit, and a digest is treated as
    part of the tag: ``alpine@sha256:...`` gives ``("alpine", "latest@sha256:...")``.
    """
    first_colon = image.find(":")
    first_at = image.find("@")

    if (
        first_colon == 0
        or first_at == 0
        or first_colon + 1 == len(image)
        or first_at + 1 == len(image)
    ):
        raise ValueError(f"unexpected image: {image!r}")

    # the order of these cases matters
    if first_colon == -1 and first_at == -1:
        return image, "latest"

    if first_at != -1 and (first_colon == -1 or first_at < first_colon):
        if first_colon == -1:
            raise ValueError(f"unexpected image: {image!r}")
        return image[:first_at], "latest" + image[first_at:]

    return image[:first_colon], image[first_colon + 1 :]


def image_inspect(container_name_or_id: str, format: str) -> list[str]:
    """Return ``docker image inspect`` output for an image, formatted with format."""
    cmd = command("docker", "image", "inspect", "-f", format, container_name_or_id)
    return combined_output_lines(cmd)


def image_id(container_name_or_id: str) -> str:
    """Return the ID of an image."""
    lines = image_inspect(container_name_or_id, "{{ .Id }}")
    if len(lines) != 1:
        raise RuntimeError(
            f"Docker image ID should only be one line, got {len(lines)} lines"
        )
    return lines[0]


def inspect(container_name_or_id: str, format: str) -> list[str]:
    """Return ``docker inspect`` output for a container, formatted with format."""
    cmd = command("docker", "inspect", "-f", format, container_name_or_id)
    return combined_output_lines(cmd)


def copy_to(host_path: str, container_name_or_id: str, dest_path: str) -> None:
    """Copy the file at host_path into the container at dest_path."""
    command("docker", "cp", host_path, f"{container_name_or_id}:{dest_path}").run()


def copy_from(container_name_or_id: str, src_path: str, host_path: str) -> None:
    """Copy the file or directory at src_path in the container to host_path."""
    command("docker", "cp", f"{container_name_or_id}:{src_path}", host_path).run()


def kill(signal: str, container_name_or_id: str) -> None:
    """Send the named signal to the container."""
    command("docker", "kill", "-s", signal, container_name_or_id).run()


def network_inspect(network_names: list[str], format: str) -> list[str]:
    """Return ``docker network inspect`` output for the named networks."""
    cmd = command("docker", "network", "inspect", "-f", format, " ".join(network_names))
    return combined_output_lines(cmd)


def save(image: str, dest: str) -> None:
    """Save image to the archive dest, as ``docker save`` does."""
    command("docker", "save", "-o", dest, image).run()


def userns_remap() -> bool:
    """Report whether the docker daemon has userns-remap enabled."""
    cmd = command("docker", "info", "--format", "'{{json .SecurityOptions}}'")
    try:
        lines = combined_output_lines(cmd)
    except CommandError:
        return False
    return bool(lines) and "name=userns" in lines[0]


def pull_if_not_present(image: str, retries: int) -> bool:
    """Pull image unless it is present locally.

    Returns True if a pull was attempted; a failed pull raises CommandError.
    """
    try:
        command("docker", "inspect", "--type=image", image).run()
    except CommandError:
        pull(image, retries)
        return True
    logger.info("Image: %s present locally", image)
    return False


def pull(image: str, retries: int) -> None:
    """Pull image, retrying up to retries times with a growing pause."""
    logger.info("Pulling image: %s ...", image)
    try:
        command("docker", "pull", image).run()
        return
    except CommandError as exc:
        error = exc

    for attempt in range(retries):
        time.sleep(attempt + 1)
        logger.info("Trying again to pull image: %s ... (%s)", image, error)
        try:
            command("docker", "pull", image).run()
            return
        except CommandError as exc:
            error = exc

    logger.info("Failed to pull image: %s (%s)", image, error)
    raise error