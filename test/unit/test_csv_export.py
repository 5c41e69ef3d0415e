"""Tests for CSV rendering and persistence of recording exports."""
from __future__ import annotations

import csv
import io
from datetime import datetime

import pytest

from recording.csv_export import dataset_to_csv, default_export_name, save_dataset
from shared.errors import ExportIOError
from shared.models import ExportDataset


def _dataset() -> ExportDataset:
    return ExportDataset(
        columns=("Time", "EMG", "ShortRMS", "LongRMS", "MaxRMS"),
        rows=(
            (0.0, -0.25, 0.0, 0.0, 0.0),
            (0.001, 0.5, 0.125, 0.0, 0.0),
            (0.002, 1.0, 0.375, 0.2, 0.9),
        ),
    )


def test_header_then_one_row_per_sample():
    text = dataset_to_csv(_dataset())
    lines = text.splitlines()
    assert lines[0] == "Time,EMG,ShortRMS,LongRMS,MaxRMS"
    assert len(lines) == 4
    assert text.endswith("\n")


def test_fields_round_trip_as_decimal_text():
    dataset = _dataset()
    rows = list(csv.reader(io.StringIO(dataset_to_csv(dataset))))
    parsed = tuple(tuple(float(v) for v in row) for row in rows[1:])
    assert parsed == dataset.rows
    assert rows[2][1] == "0.5"


def test_empty_dataset_has_only_header():
    dataset = ExportDataset(columns=("Time", "EMG"), rows=())
    assert dataset_to_csv(dataset) == "Time,EMG\n"


def test_dataset_rejects_ragged_rows():
    with pytest.raises(ValueError):
        ExportDataset(columns=("Time", "EMG"), rows=((0.0,),))


def test_default_export_name():
    assert default_export_name(datetime(2024, 3, 5, 14, 7, 9)) == "emg_data_2024-03-05T14_07_09.csv"


def test_save_dataset_creates_parent_dirs(tmp_path):
    target = tmp_path / "nested" / "out.csv"
    written = save_dataset(_dataset(), target)
    assert written == target
    assert target.read_text(encoding="utf-8") == dataset_to_csv(_dataset())


def test_save_failure_carries_dataset(tmp_path):
    blocker = tmp_path / "not_a_dir"
    blocker.write_text("x", encoding="utf-8")
    dataset = _dataset()
    with pytest.raises(ExportIOError) as excinfo:
        save_dataset(dataset, blocker / "out.csv")
    assert excinfo.value.dataset is dataset
    assert isinstance(excinfo.value, OSError)
