"""
Transient credential file handling.

The tunnel CLI writes the virtual cluster kubeconfig to a file the harness
allocates up front. The file is private to the current user, starts empty,
and is removed on every exit path of its owner.
"""

import logging
import os
import tempfile
from pathlib import Path
from types import TracebackType

from vcluster_e2e.constants import KUBECONFIG_FILE_PREFIX
from vcluster_e2e.errors import ResourceAllocationError

logger = logging.getLogger(__name__)


class CredentialFile:
    """
    A private, initially empty file that receives connection credentials.

    Use as a context manager; the file is deleted on exit regardless of
    how the block ends.
    """

    def __init__(self, path: Path):
        self.path = path

    @classmethod
    def allocate(
        cls, directory: str | os.PathLike | None = None, prefix: str = KUBECONFIG_FILE_PREFIX
    ) -> "CredentialFile":
        """
        Create an empty credential file readable only by the current user.

        Raises:
            ResourceAllocationError: If the file cannot be created
        """
        try:
            fd, name = tempfile.mkstemp(prefix=prefix, dir=directory)
        except OSError as e:
            raise ResourceAllocationError(
                f"Cannot create credential file in {directory or tempfile.gettempdir()}: {e}",
                cause=e,
            ) from e
        os.close(fd)
        logger.debug(f"Allocated credential file {name}")
        return cls(Path(name))

    def read(self) -> bytes | None:
        """
        Return the file content, or None while there is nothing to parse yet.

        A missing, unreadable or empty file means the writer has not caught up.
        """
        try:
            content = self.path.read_bytes()
        except OSError:
            return None
        if not content.strip():
            return None
        return content

    def remove(self) -> None:
        try:
            self.path.unlink()
            logger.debug(f"Removed credential file {self.path}")
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning(f"Failed to remove credential file {self.path}: {e}")

    @property
    def exists(self) -> bool:
        return self.path.exists()

    def __enter__(self) -> "CredentialFile":
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.remove()

    def __str__(self) -> str:
        return str(self.path)
