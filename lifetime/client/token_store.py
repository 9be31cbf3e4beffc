"""
Keeps the signed-in user's token on disk so a restarted client resumes the
session instead of asking for credentials again.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import ValidationError as PydanticValidationError

from lifetime.client.http_repository import SignInResult

logger = logging.getLogger(__name__)


class FileTokenStore:
    """One JSON document holding the last :class:`SignInResult`."""

    def __init__(self, path: str | os.PathLike[str]) -> None:
        self.path = Path(path)

    def load(self) -> SignInResult | None:
        try:
            raw = self.path.read_text(encoding="utf-8")
        except FileNotFoundError:
            return None
        try:
            return SignInResult.model_validate_json(raw)
        except PydanticValidationError:
            logger.error("Discarding unreadable session file %s", self.path)
            self.clear()
            return None

    def save(self, result: SignInResult) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp = self.path.with_suffix(self.path.suffix + ".tmp")
        tmp.write_text(result.model_dump_json(), encoding="utf-8")
        os.chmod(tmp, 0o600)
        os.replace(tmp, self.path)
        logger.debug("Saved session for %s", result.user.userid)

    def clear(self) -> None:
        self.path.unlink(missing_ok=True)
