"""Encrypted persistence for the imported recovery phrase."""

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Optional

from hashield.crypto import decrypt_secret, encrypt_secret

logger = logging.getLogger(__name__)


class WalletStore:
    """Stores the seed phrase (Fernet-encrypted when MASTER_KEY is set)."""

    def __init__(self, path: str | Path, master_key: Optional[str] = None):
        self.path = Path(path)
        self._master_key = master_key

    def save_phrase(self, phrase: str) -> None:
        """Write the phrase atomically. The file is owner-only (0600) from creation."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        payload = {"seedPhrase": encrypt_secret(phrase, self._master_key)}
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".wallet-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(payload, f)
            os.replace(tmp_path, self.path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            raise
        logger.info(f"Wallet saved to {self.path}")

    def load_phrase(self) -> Optional[str]:
        if not self.path.exists():
            return None
        data = json.loads(self.path.read_text(encoding="utf-8"))
        stored = data.get("seedPhrase")
        if not stored:
            return None
        return decrypt_secret(stored, self._master_key)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
            logger.info(f"Wallet file removed: {self.path}")
