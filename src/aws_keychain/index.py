"""Best-effort plaintext index of credential names.

The platform secret stores cannot be enumerated, so names are recorded here
for listing. The index is a hint only: it can hold names whose secret is
gone and miss names added by other tools. Nothing here consults the store.
"""

import os
import tempfile
from pathlib import Path

import structlog

logger = structlog.get_logger(__name__)


class NameIndex:
    """One credential name per line in a plain text file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def _ensure_parent(self) -> None:
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)

    def record(self, name: str) -> None:
        """Append a name. Duplicates are allowed and collapsed by list()."""
        self._ensure_parent()
        fd = os.open(self.path, os.O_WRONLY | os.O_CREAT | os.O_APPEND, 0o600)
        with os.fdopen(fd, "a", encoding="utf-8") as f:
            f.write(f"{name}\n")
        logger.debug("index_recorded", name=name, path=str(self.path))

    def _read_lines(self) -> list[str]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return [line.strip() for line in f]
        except FileNotFoundError:
            return []

    def list(self) -> list[str]:
        """Return recorded names, deduplicated and sorted."""
        return sorted({line for line in self._read_lines() if line})

    def forget(self, name: str) -> None:
        """Remove every occurrence of a name.

        The new list is written to a temporary file next to the index and
        swapped in with a single rename, so readers see the old or the new
        list, never a partial one.
        """
        if not self.path.exists():
            return
        remaining = [line for line in self._read_lines() if line and line != name]
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.writelines(f"{line}\n" for line in remaining)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.debug("index_forgot", name=name, path=str(self.path))
