"""Maintenance -- network collaborators (update check, dump upload)."""

from maintenance.network.dump import DiagnosticDump, DumpUploader
from maintenance.network.update_checker import UpdateChecker, UpdateResult, Version

__all__ = [
    "UpdateChecker",
    "UpdateResult",
    "Version",
    "DiagnosticDump",
    "DumpUploader",
]
