"""
Snipe List - Reloadable allow-list of token mints.

File format: one mint per line, blank lines ignored.
"""

import asyncio
import logging
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)


class SnipeList:
    def __init__(self, path: Union[str, Path], enabled: bool = True):
        self.path = Path(path)
        self.enabled = enabled
        self._tokens: dict[str, None] = {}  # Insertion-ordered set

    def load(self) -> bool:
        """Re-read the file. On failure the previous list is kept."""
        try:
            text = self.path.read_text(encoding="utf-8")
        except OSError as e:
            logger.warning(f"Failed to load snipe list from {self.path}: {e}")
            return False

        count = len(self._tokens)
        self._tokens = dict.fromkeys(line.strip() for line in text.splitlines() if line.strip())
        if len(self._tokens) != count:
            logger.info(f"Loaded snipe list: {len(self._tokens)} tokens")
        return True

    refresh = load

    def allows(self, token: str) -> bool:
        """True if the list is disabled or contains token."""
        return not self.enabled or token in self._tokens

    def tokens(self) -> list[str]:
        return list(self._tokens)

    def __contains__(self, token: str) -> bool:
        return token in self._tokens

    def __len__(self) -> int:
        return len(self._tokens)

    async def run(self, interval_sec: float):
        """Refresh forever at a fixed interval. Cancel to stop."""
        while True:
            await asyncio.sleep(interval_sec)
            self.load()
