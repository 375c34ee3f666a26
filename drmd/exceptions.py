"""Domain exceptions raised by the codec and the engine.

The CLI and the HTTP server catch these and translate them into exit codes
and responses. Conversion misses and missing fields are not exceptions:
they surface as empty D-SI fields and validation report entries.
"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .validator import ValidationReport


class DrmdError(Exception):
    """Base class for all DRMD errors."""


class MalformedDocumentError(DrmdError):
    """XML that cannot be read as a DRMD (maps to HTTP 400)."""


class ExportBlockedError(DrmdError):
    """Export refused because validation reported errors (maps to HTTP 422)."""

    def __init__(self, report: "ValidationReport"):
        self.report = report
        messages = "; ".join(
            f"{issue.section}: {issue.message}" for issue in report.errors
        )
        super().__init__(f"Export blocked by {len(report.errors)} error(s): {messages}")
