"""CSV serialization and persistence for recording exports."""
from __future__ import annotations

import csv
import io
import logging
from datetime import datetime
from pathlib import Path
from typing import Optional

from shared.errors import ExportIOError
from shared.models import ExportDataset

logger = logging.getLogger(__name__)


def dataset_to_csv(dataset: ExportDataset) -> str:
    """Render a header row followed by one row per sample, in recording order."""
    out = io.StringIO()
    writer = csv.writer(out, lineterminator="\n")
    writer.writerow(dataset.columns)
    for row in dataset.rows:
        writer.writerow([repr(float(v)) for v in row])
    return out.getvalue()


def default_export_name(now: Optional[datetime] = None) -> str:
    stamp = (now or datetime.now()).strftime("%Y-%m-%dT%H_%M_%S")
    return f"emg_data_{stamp}.csv"


def save_dataset(dataset: ExportDataset, path: str | Path) -> Path:
    """
    Write `dataset` as CSV text to `path`, creating parent directories.

    Raises ExportIOError (carrying the dataset) when the file cannot be written.
    """
    path = Path(path)
    text = dataset_to_csv(dataset)
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("w", newline="", encoding="utf-8") as fh:
            fh.write(text)
    except OSError as exc:
        logger.error("Failed to save recording to %s: %s", path, exc)
        raise ExportIOError(f"could not write {path}: {exc}", dataset) from exc
    logger.info("Saved %d rows to %s", dataset.n_rows, path)
    return path


__all__ = ["dataset_to_csv", "default_export_name", "save_dataset"]
