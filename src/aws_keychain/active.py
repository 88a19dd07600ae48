"""The active credentials file shared with AWS tooling.

The file is process-wide state: whichever invocation writes it last decides
the active credential. There is no locking; concurrent ``use`` calls race.
"""

import os
import tempfile
from pathlib import Path
from typing import Optional

import structlog

from .errors import MalformedActiveFile

logger = structlog.get_logger(__name__)

SECTION = "[Credentials]"
ACCESS_KEY_ID_FIELD = "AWSAccessKeyId"
SECRET_KEY_FIELD = "AWSSecretKey"


def render_credentials_file(access_key_id: str, secret_access_key: str) -> str:
    """Render a key pair in the AWS credential file format."""
    return (
        f"{SECTION}\n"
        f"{ACCESS_KEY_ID_FIELD}={access_key_id}\n"
        f"{SECRET_KEY_FIELD}={secret_access_key}\n"
    )


def parse_access_key_id(content: str) -> Optional[str]:
    """Return the value after ``AWSAccessKeyId=``, or None if absent or empty."""
    prefix = f"{ACCESS_KEY_ID_FIELD}="
    for line in content.splitlines():
        line = line.strip()
        if line.startswith(prefix):
            return line[len(prefix):].strip() or None
    return None


class ActiveCredentialsFile:
    """Reads, replaces and clears the active credentials file."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def write(self, access_key_id: str, secret_access_key: str) -> None:
        """Replace the file wholesale with a single key pair."""
        self.path.parent.mkdir(mode=0o700, parents=True, exist_ok=True)
        fd, tmp_path = tempfile.mkstemp(
            dir=self.path.parent, prefix=f".{self.path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(render_credentials_file(access_key_id, secret_access_key))
            os.chmod(tmp_path, 0o600)
            os.replace(tmp_path, self.path)
        except BaseException:
            Path(tmp_path).unlink(missing_ok=True)
            raise
        logger.info("active_file_written", path=str(self.path), access_key_id=access_key_id)

    def clear(self) -> None:
        """Delete the file. A missing file is not an error."""
        self.path.unlink(missing_ok=True)
        logger.info("active_file_cleared", path=str(self.path))

    def read_active_access_key_id(self) -> Optional[str]:
        """Return the active access key ID, or None when nothing is active.

        Raises:
            MalformedActiveFile: If the file exists without a readable ID.
        """
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                content = f.read()
        except FileNotFoundError:
            return None
        except UnicodeDecodeError as e:
            raise MalformedActiveFile(f"{self.path} is not a text file: {e}") from e

        access_key_id = parse_access_key_id(content)
        if access_key_id is None:
            raise MalformedActiveFile(
                f"{self.path} has no {ACCESS_KEY_ID_FIELD} value"
            )
        return access_key_id
