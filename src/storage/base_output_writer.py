# src/storage/base_output_writer.py — v3
"""Where stage snapshots are written."""

from __future__ import annotations

from abc import ABC, abstractmethod


class BaseOutputWriter(ABC):
    """Destination for snapshot records, addressed by names relative to a run."""

    @abstractmethod
    async def write(self, name: str, content: str) -> None:
        """Store one snapshot record under ``name``, replacing any previous one."""

    def local_path(self, name: str) -> str | None:
        """Filesystem location of ``name`` when the backend is local, else None.

        Version control can only track snapshots that exist on disk.
        """
        return None
