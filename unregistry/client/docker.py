"""
Bridge between local Docker images and gzipped archives.

Nothing here touches the tar format: `docker save` and `docker load`
do the packaging, `gzip` and `gunzip` the compression. We only wire
their pipes together and check exit codes.
"""

import logging
import subprocess
from pathlib import Path

from ..core.objects import IMAGE_SUFFIX

logger = logging.getLogger(__name__)


class DockerError(Exception):
    """Raised when docker or gzip exits with a failure."""
    pass


def image_object_name(docker_image: str) -> str:
    """
    Name an image is stored under on the server.

    Image references may contain '/', which cannot be part of an object
    name, so it is replaced with '_'. Push and pull both go through
    here so they agree on the name.
    """
    return docker_image.replace("/", "_")


def archive_filename(docker_image: str) -> str:
    return image_object_name(docker_image) + IMAGE_SUFFIX


def _run_pipeline(producer_cmd: list[str], consumer_cmd: list[str], **consumer_kwargs) -> None:
    """
    Run `producer | consumer` and raise DockerError if either fails.

    The producer is started first and its stdout handed to the consumer
    as stdin. If the consumer cannot be started the producer is killed,
    so it never blocks on a pipe nobody reads.
    """
    try:
        producer = subprocess.Popen(producer_cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE)
    except FileNotFoundError as e:
        raise DockerError(f"{producer_cmd[0]} not found") from e

    try:
        consumer = subprocess.Popen(
            consumer_cmd,
            stdin=producer.stdout,
            stderr=subprocess.PIPE,
            **consumer_kwargs,
        )
    except FileNotFoundError as e:
        producer.kill()
        producer.wait()
        raise DockerError(f"{consumer_cmd[0]} not found") from e

    # Let the consumer own the read end so the producer sees SIGPIPE if it exits
    producer.stdout.close()

    _, consumer_err = consumer.communicate()
    _, producer_err = producer.communicate()

    # A dead consumer makes the producer fail with SIGPIPE; report the cause
    if consumer.returncode != 0:
        raise DockerError(
            f"{' '.join(consumer_cmd)} failed: {consumer_err.decode(errors='replace').strip()}"
        )
    if producer.returncode != 0:
        raise DockerError(
            f"{' '.join(producer_cmd)} failed: {producer_err.decode(errors='replace').strip()}"
        )


def save_image(docker_image: str, dest_path: Path) -> Path:
    """Write `docker save <image> | gzip` to dest_path."""
    dest_path = Path(dest_path)

    logger.info("Saving docker image", extra={"docker_image": docker_image})

    with open(dest_path, "wb") as out:
        _run_pipeline(["docker", "save", docker_image], ["gzip"], stdout=out)

    return dest_path


def load_image(archive_path: Path) -> None:
    """Run `gunzip -c <archive> | docker load`."""
    logger.info("Loading docker image", extra={"archive": str(archive_path)})

    _run_pipeline(
        ["gunzip", "-c", str(archive_path)],
        ["docker", "load"],
        stdout=subprocess.DEVNULL,
    )
