import os
import shutil
from pathlib import Path
from typing import Callable, Iterable, Optional

from dropshot.config import settings
from dropshot.core.logger import logger

EXIT_STATUS = 3
TAG = "SELF-DESTRUCT"

PACKAGE_DIRECTORY = Path(__file__).resolve().parents[1]


def remove_path(path: str) -> None:
    target = Path(path)
    if target.is_dir() and not target.is_symlink():
        shutil.rmtree(target)
    elif target.exists() or target.is_symlink():
        target.unlink()


class SelfDestruct:
    """Removes the program, the uploads and extra files, then exits.

    Only ``trigger`` has side effects, and only when enabled. ``remove`` and
    ``exit`` are injectable so the sequence can run without deleting anything.
    """

    def __init__(
        self,
        enabled: bool = False,
        keyword: str = "",
        upload_directory: str = ".",
        files: Iterable[str] = (),
        executable: Optional[str] = None,
        remove: Callable[[str], None] = remove_path,
        exit: Callable[[int], None] = os._exit,
    ):
        self.enabled = enabled
        self.keyword = keyword
        self.upload_directory = upload_directory
        self.files = list(files)
        self.executable = executable
        self.remove = remove
        self.exit = exit

    @classmethod
    def from_settings(cls, **kwargs) -> "SelfDestruct":
        return cls(
            enabled=settings.self_destruct_enabled,
            keyword=settings.self_destruct_keyword,
            upload_directory=settings.upload_directory,
            files=settings.self_destruct_files,
            executable=str(PACKAGE_DIRECTORY),
            **kwargs
        )

    def matches(self, name: str) -> bool:
        return self.enabled and bool(self.keyword) and name == self.keyword

    def removals(self) -> list[str]:
        removals = [self.upload_directory, *self.files]
        if self.executable:
            removals.insert(0, self.executable)
        return removals

    def trigger(self) -> list[str]:
        """Returns the paths that could not be removed when ``exit`` returns."""
        if not self.enabled:
            return []

        logger.critical("self_destruct_initiated", tag=TAG)

        failures = []
        if not self.executable:
            logger.error("self_destruct_binary_unknown", tag=TAG)
            failures.append("dropshot program")

        for removal in self.removals():
            try:
                self.remove(removal)
            except OSError as e:
                failures.append(removal)
                logger.error("self_destruct_remove_failed", tag=TAG, path=removal, error=str(e))

        if failures:
            logger.error("self_destruct_manual_cleanup_required", tag=TAG, paths=failures)

        logger.critical("self_destruct_shutdown", tag=TAG, status=EXIT_STATUS)
        self.exit(EXIT_STATUS)
        return failures
