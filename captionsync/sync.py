"""Scan a directory into the caption sidecar and apply it back.

Both operations stop at the first error. A failed scan leaves the
partially written sidecar behind; a failed apply leaves earlier rows
applied.
"""
from __future__ import annotations
from pathlib import Path
from typing import List, Optional, Union
import os
import sys

from .caption_meta import CaptionError, CaptionStore, PiexifCaptions
from .csv_codec import CSVLineReader, CSVLineWriter, MalformedRecordError

CSV_FILENAME = "bilder.csv"
HEADER = ("filename", "title")
JPEG_EXTS = {"jpg", "jpeg"}
PROGRESS_EVERY = 500

PathLike = Union[str, Path]


class SyncError(RuntimeError):
    pass


class MissingColumnsError(SyncError):
    pass


def is_jpeg(name: str) -> bool:
    ext = os.path.splitext(name)[1].lower()
    if ext.startswith("."):
        ext = ext[1:]
    return ext in JPEG_EXTS


def header_index(header: List[str], name: str) -> int:
    for i, value in enumerate(header):
        if value.strip().lower() == name.lower():
            return i
    return -1


def resolve_image_path(directory: PathLike, filename: str) -> str:
    if os.path.isabs(filename):
        return filename
    return os.path.join(directory, filename)


def list_images(directory: PathLike, csv_name: str = CSV_FILENAME) -> List[str]:
    """Names of regular JPEG files directly inside directory, sorted by name."""
    try:
        with os.scandir(directory) as it:
            entries = sorted(it, key=lambda e: e.name)
    except OSError as e:
        raise SyncError(f"read directory: {e}") from e

    names: List[str] = []
    for entry in entries:
        # symlinks are not regular files here, even when they point to one
        if not entry.is_file(follow_symlinks=False):
            continue
        if entry.name.lower() == csv_name.lower() or not is_jpeg(entry.name):
            continue
        names.append(entry.name)
    return names


# ----------------------- Scan -----------------------


def scan_directory(
    directory: PathLike,
    store: Optional[CaptionStore] = None,
    csv_name: str = CSV_FILENAME,
    verbose: bool = False,
) -> int:
    """Write one filename,title row per JPEG in directory. Returns rows written."""
    store = store or PiexifCaptions()
    directory = os.path.normpath(str(directory))
    names = list_images(directory, csv_name)
    if verbose:
        print(f"Found {len(names):,} image files in {directory}", file=sys.stderr)

    csv_path = os.path.join(directory, csv_name)
    abs_dir = os.path.abspath(directory)
    try:
        f = open(csv_path, "w", encoding="utf-8", newline="")
    except OSError as e:
        raise SyncError(f"create csv: {e}") from e

    with f:
        writer = CSVLineWriter(f)
        try:
            writer.write(HEADER)
        except OSError as e:
            raise SyncError(f"write header: {e}") from e

        for name in names:
            try:
                title = store.read_caption(os.path.join(abs_dir, name))
            except (CaptionError, OSError) as e:
                raise SyncError(f"read title for {name}: {e}") from e
            try:
                writer.write((name, title))
            except OSError as e:
                raise SyncError(f"write row for {name}: {e}") from e
            count = writer.rows - 1
            if verbose and count % PROGRESS_EVERY == 0:
                print(f"wrote {count:,} rows...", file=sys.stderr)

        try:
            writer.flush()
        except OSError as e:
            raise SyncError(f"flush csv: {e}") from e

    return writer.rows - 1


# ----------------------- Apply -----------------------


def apply_titles_from_csv(
    directory: PathLike,
    store: Optional[CaptionStore] = None,
    csv_name: str = CSV_FILENAME,
    verbose: bool = False,
) -> int:
    """Write each row's title into its image. Returns the number of rows applied."""
    store = store or PiexifCaptions()
    directory = os.path.normpath(str(directory))
    csv_path = os.path.join(directory, csv_name)
    try:
        f = open(csv_path, "rb")
    except OSError as e:
        raise SyncError(f"open csv: {e}") from e

    applied = 0
    with f:
        reader = CSVLineReader(f)
        try:
            header = reader.read()
        except MalformedRecordError as e:
            raise SyncError(f"read header: {e}") from e
        if header is None:
            raise SyncError(f"read header: {csv_path} is empty")

        filename_idx = header_index(header, "filename")
        title_idx = header_index(header, "title")
        if filename_idx == -1 or title_idx == -1:
            raise MissingColumnsError("csv must include filename and title columns")

        while True:
            try:
                record = reader.read()
            except MalformedRecordError as e:
                raise SyncError(f"read record: {e}") from e
            if record is None:
                break
            if filename_idx >= len(record):
                continue
            filename = record[filename_idx].strip()
            if not filename:
                continue
            title = record[title_idx] if title_idx < len(record) else ""

            path = resolve_image_path(directory, filename)
            try:
                store.write_caption(path, title)
            except (CaptionError, OSError) as e:
                raise SyncError(f"apply title for {filename}: {e}") from e
            applied += 1
            if verbose and applied % PROGRESS_EVERY == 0:
                print(f"applied {applied:,} titles...", file=sys.stderr)

    return applied
