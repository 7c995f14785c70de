"""
Contexts shared between the BuildSystem and its PackBuilders.
"""
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Optional

from ..core.exceptions import BuildCancelledError
from ..core.models import BuildConfig


class CancellationToken:
    """Cooperative cancellation flag for one build attempt"""

    def __init__(self):
        self._cancelled = False

    def cancel(self) -> None:
        self._cancelled = True

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def raise_if_cancelled(self) -> None:
        """
        Raises:
            BuildCancelledError: If cancellation was requested
        """
        if self._cancelled:
            raise BuildCancelledError("Build attempt was cancelled")


@dataclass(frozen=True)
class BuildSystemContext:
    """State that remains constant for the life of one BuildSystem"""
    config: BuildConfig
    id: str
    temp_dir: Path
    logger: logging.Logger = field(default_factory=lambda: logging.getLogger("packforge.build"))


@dataclass(frozen=True)
class BuildExecutionContext:
    """State scoped to one build attempt, including rebuilds"""
    system: BuildSystemContext
    token: CancellationToken = field(default_factory=CancellationToken)
    limit: Optional[FrozenSet[str]] = None  # scope limit for watch-triggered rebuilds

    @property
    def logger(self) -> logging.Logger:
        return self.system.logger
