"""
Caption Sync

Keeps JPEG captions (EXIF ImageDescription) and a bilder.csv sidecar in step.

  captionsync --scan <dir>    read every JPEG's caption into <dir>/bilder.csv
  captionsync --apply <dir>   write the edited titles back into the images

Exit codes: 0 ok, 1 operational error, 2 usage error, 3 ExifTool missing.
"""
from __future__ import annotations
import argparse
import os
import sys
from typing import List, Optional

from .caption_meta import BACKENDS, DEFAULT_BACKEND, CaptionError, make_store
from .sync import CSV_FILENAME, SyncError, apply_titles_from_csv, scan_directory


def build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(
        prog="captionsync",
        description=f"Sync JPEG captions with {CSV_FILENAME} in a directory.",
    )
    mode = ap.add_mutually_exclusive_group(required=True)
    mode.add_argument("-s", "--scan", action="store_true", help=f"Scan a directory and create {CSV_FILENAME}")
    mode.add_argument("-a", "--apply", action="store_true", help=f"Apply titles from {CSV_FILENAME} in a directory")
    ap.add_argument("dir", help="Target directory (not searched recursively)")
    ap.add_argument("--backend", choices=BACKENDS, default=DEFAULT_BACKEND,
                    help=f"Metadata library used to read/write captions (default: {DEFAULT_BACKEND})")
    ap.add_argument("--exiftool", default=None, help="Path to exiftool executable (exiftool backend only)")
    ap.add_argument("-q", "--quiet", action="store_true", help="Only print errors")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    ap = build_parser()
    args = ap.parse_args(argv)
    verbose = not args.quiet

    try:
        store = make_store(args.backend, args.exiftool)
    except CaptionError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 3

    csv_path = os.path.join(args.dir, CSV_FILENAME)
    try:
        if args.scan:
            rows = scan_directory(args.dir, store=store, verbose=verbose)
            if verbose:
                print(f"Done. CSV: {csv_path} | rows: {rows}", file=sys.stderr)
        else:
            rows = apply_titles_from_csv(args.dir, store=store, verbose=verbose)
            if verbose:
                print(f"Done. Applied {rows} titles from {csv_path}", file=sys.stderr)
    except (SyncError, CaptionError, OSError) as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
