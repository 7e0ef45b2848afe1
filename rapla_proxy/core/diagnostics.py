# rapla_proxy/core/diagnostics.py
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class Breadcrumb:
    """A single structured diagnostic record emitted while scraping."""
    category: str
    message: str
    data: Dict[str, Any] = field(default_factory=dict)


class LoggingDiagnostics:
    """
    Diagnostic sink that writes breadcrumbs to a standard logger.

    Sinks are passed into the parser by the caller, which owns their lifecycle.
    Emission is best-effort: a failing sink never fails a parse.
    """

    def __init__(self, logger: logging.Logger = log, level: int = logging.DEBUG):
        self.logger = logger
        self.level = level

    def breadcrumb(self, category: str, message: str, data: Optional[Dict[str, Any]] = None) -> None:
        crumb = Breadcrumb(category=category, message=message, data=dict(data or {}))
        try:
            self.emit(crumb)
        except Exception as e:
            log.debug(f"Dropped diagnostic breadcrumb '{message}': {e}")

    def emit(self, crumb: Breadcrumb) -> None:
        if self.logger.isEnabledFor(self.level):
            context = ", ".join(f"{k}={v!r}" for k, v in crumb.data.items())
            self.logger.log(
                self.level,
                f"[{crumb.category}] {crumb.message}{f' ({context})' if context else ''}",
            )


class RecordingDiagnostics(LoggingDiagnostics):
    """Logs breadcrumbs and also keeps them, in order, for later inspection."""

    def __init__(self, logger: logging.Logger = log, level: int = logging.DEBUG):
        super().__init__(logger, level)
        self.breadcrumbs: List[Breadcrumb] = []

    def emit(self, crumb: Breadcrumb) -> None:
        self.breadcrumbs.append(crumb)
        super().emit(crumb)
