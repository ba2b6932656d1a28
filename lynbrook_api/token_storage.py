"""
File-backed token persistence.

Supplies the loadToken / onTokenChange pair the session store expects.
"""

import asyncio
from pathlib import Path

from loguru import logger

from lynbrook_api.services.errors import TokenStorageError


class FileTokenStorage:
    """Keeps the bearer token in a single text file."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    async def load(self) -> str | None:
        if not self.path.exists():
            return None
        loop = asyncio.get_running_loop()
        try:
            text = await loop.run_in_executor(None, self._read)
        except OSError as e:
            raise TokenStorageError(f"Could not read token file {self.path}: {e}") from e
        return text.strip() or None

    async def save(self, token: str | None) -> None:
        loop = asyncio.get_running_loop()
        try:
            if token is None:
                await loop.run_in_executor(None, self._remove)
                logger.debug(f"Removed token file {self.path}")
            else:
                await loop.run_in_executor(None, self._write, token)
                logger.debug(f"Stored token in {self.path}")
        except OSError as e:
            raise TokenStorageError(f"Could not update token file {self.path}: {e}") from e

    def _read(self) -> str:
        return self.path.read_text(encoding="utf-8")

    def _remove(self) -> None:
        self.path.unlink(missing_ok=True)

    def _write(self, token: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self.path.write_text(token, encoding="utf-8")
        self.path.chmod(0o600)
