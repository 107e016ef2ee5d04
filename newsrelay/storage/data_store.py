"""Flat-file persistence for per-source state.

Reads fail open (a missing or unreadable file is treated as empty) and
writes are best effort (a failure is logged and reported as ``False``).
Losing state only risks a duplicate post; crashing the relay is worse.
"""

from __future__ import annotations

import logging
import os
import tempfile
from pathlib import Path
from typing import List, Sequence

from newsrelay.storage.record_codec import RecordCodec

logger = logging.getLogger(__name__)


class DataStore:
    """Directory of small text files, each rewritten in full on save."""

    def __init__(self, directory: str = "./data"):
        self.directory = Path(directory)
        self._ensure_directory()

    def _ensure_directory(self):
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.error(f"Could not create data directory {self.directory}: {e}")

    def path(self, filename: str) -> Path:
        return self.directory / filename

    def exists(self, filename: str) -> bool:
        return self.path(filename).exists()

    def ensure_file(self, filename: str, default_content: str = "") -> None:
        if not self.exists(filename):
            self.write_text(filename, default_content)

    def read_text(self, filename: str) -> str:
        file_path = self.path(filename)
        try:
            return file_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return ""
        except (OSError, UnicodeDecodeError) as e:
            logger.error(f"Error reading {file_path}, treating as empty: {e}")
            return ""

    def write_text(self, filename: str, content: str) -> bool:
        """Atomically replace ``filename`` with ``content``."""
        file_path = self.path(filename)
        tmp_name = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(dir=str(self.directory), prefix=f".{filename}.", suffix=".tmp")
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(content)
            os.replace(tmp_name, file_path)
            return True
        except (OSError, UnicodeError) as e:
            # Unencodable text (lone surrogates from upstream JSON) raises UnicodeEncodeError
            logger.error(f"Error saving {file_path}: {e}")
            return False
        finally:
            if tmp_name and os.path.exists(tmp_name):
                try:
                    os.unlink(tmp_name)
                except OSError as e:
                    logger.warning(f"Could not remove temp file {tmp_name}: {e}")

    def load_lines(self, filename: str) -> List[str]:
        """Non-blank, non-comment lines, stripped."""
        lines = []
        for line in self.read_text(filename).split("\n"):
            line = line.strip()
            if line and not line.startswith("#"):
                lines.append(line)
        return lines

    def save_lines(self, filename: str, lines: Sequence[str]) -> bool:
        content = "\n".join(lines)
        if content:
            content += "\n"
        return self.write_text(filename, content)

    def load_records(self, filename: str, codec: RecordCodec) -> List[List[str]]:
        return codec.loads(self.read_text(filename))

    def save_records(self, filename: str, codec: RecordCodec, records: Sequence[Sequence[str]]) -> bool:
        return self.write_text(filename, codec.dumps(records))
