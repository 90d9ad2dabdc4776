"""Caption sync for JPEG folders.

Modules:
- csv_codec: minimal quoted-CSV encode/decode and line reader/writer
- caption_meta: read/write the EXIF ImageDescription tag (piexif or ExifTool)
- sync: scan a directory into bilder.csv and apply it back
- main: command line entry point
"""
from .caption_meta import CaptionError, CaptionValue, make_store
from .csv_codec import MalformedRecordError, decode_line, encode_record
from .sync import (
    CSV_FILENAME,
    MissingColumnsError,
    SyncError,
    apply_titles_from_csv,
    scan_directory,
)

__version__ = "0.1.0"
