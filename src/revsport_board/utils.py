"""Snapshot export for offline inspection.

Writes the latest snapshot as camelCase JSON (the shape the display clients
receive) and keeps the previous file as a timestamped backup.
"""

import json
import os
import shutil
import tempfile
from datetime import datetime
from pathlib import Path

from revsport_board.logging import get_logger
from revsport_board.models import BookingSnapshot

log = get_logger(__name__)


def export_snapshot(snapshot: BookingSnapshot, path: str | Path) -> Path:
    """Write a snapshot to a JSON file, backing up any existing file first.

    The new file is written to a temp file in the same directory and renamed
    into place, so readers never see a half-written snapshot.

    Args:
        snapshot: Snapshot to export.
        path: Destination file.

    Returns:
        Resolved path of the written file.
    """
    target = Path(path).resolve()
    target.parent.mkdir(parents=True, exist_ok=True)

    if target.exists():
        stamp = datetime.now().strftime("%Y%m%d%H%M%S")
        backup = target.with_name(f"{target.name}.backup.{stamp}")
        shutil.copy2(target, backup)
        log.debug("snapshot_backup_written", path=str(backup))

    payload = snapshot.model_dump(mode="json", by_alias=True)
    fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=f".{target.name}.")
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as handle:
            json.dump(payload, handle, indent=2)
        os.replace(tmp_name, target)
    except BaseException:
        Path(tmp_name).unlink(missing_ok=True)
        raise

    log.info(
        "snapshot_exported",
        path=str(target),
        boats=snapshot.metadata.total_boats,
        bookings=snapshot.metadata.total_bookings,
    )
    return target
