"""
Process-wide advisory condition.

A single optional quota notice, raised by the orchestrator and cleared by the
consumer (dismiss) or by a credential change.
"""

from datetime import datetime

from loguru import logger
from pydantic import BaseModel


class Advisory(BaseModel):
    kind: str
    message: str
    raised_at: str


class AdvisoryState:
    """Holds the current advisory, if any."""

    def __init__(self):
        self._current: Advisory | None = None

    @property
    def current(self) -> Advisory | None:
        return self._current

    def raise_quota(self, message: str) -> Advisory:
        self._current = Advisory(kind="quota", message=message, raised_at=datetime.now().isoformat())
        logger.warning(f"Quota advisory raised: {message}")
        return self._current

    def dismiss(self) -> None:
        if self._current is not None:
            logger.info("Advisory dismissed")
        self._current = None
