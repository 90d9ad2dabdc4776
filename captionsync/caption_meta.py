"""Caption access for single JPEG files.

Two backends implement the same read_caption/write_caption pair:
- PiexifCaptions: pure Python, rewrites the Exif APP1 block and keeps JFIF APP0
- ExifToolCaptions: shells out to ExifTool (optional, must be installed)
"""
from __future__ import annotations
from pathlib import Path
from typing import Any, List, NamedTuple, Optional, Protocol, Union
import io
import shutil
import struct
import subprocess

import piexif

DEFAULT_BACKEND = "piexif"
BACKENDS = ("piexif", "exiftool")
CAPTION_TAG = "ImageDescription"

PathLike = Union[str, Path]


class CaptionError(RuntimeError):
    """The metadata library could not read or rewrite a file."""

    def __init__(self, message: str, path: Optional[PathLike] = None):
        self.path = path
        super().__init__(message)


# ----------------------- Caption value -----------------------


class CaptionValue(NamedTuple):
    """Raw tag value tagged with its shape.

    kind is one of: text, text_list, bytes, bytes_list, empty.
    """
    kind: str
    payload: Any = None

    @classmethod
    def from_raw(cls, raw: Any) -> "CaptionValue":
        if raw is None:
            return cls("empty")
        if isinstance(raw, str):
            return cls("text", raw)
        if isinstance(raw, (bytes, bytearray)):
            return cls("bytes", bytes(raw))
        if isinstance(raw, (list, tuple)):
            if not raw:
                return cls("empty")
            if isinstance(raw[0], (bytes, bytearray)):
                return cls("bytes_list", [bytes(x) for x in raw if isinstance(x, (bytes, bytearray))])
            if isinstance(raw[0], str):
                return cls("text_list", [x for x in raw if isinstance(x, str)])
            return cls("empty")
        return cls("empty")

    def to_text(self) -> str:
        if self.kind == "text":
            return self.payload
        if self.kind == "text_list":
            return self.payload[0] if self.payload else ""
        if self.kind == "bytes":
            return _decode(self.payload)
        if self.kind == "bytes_list":
            return _decode(self.payload[0]) if self.payload else ""
        return ""


def _decode(b: bytes) -> str:
    return b.decode("utf-8", errors="replace")


def normalize_caption(raw: Any) -> str:
    return CaptionValue.from_raw(raw).to_text()


class CaptionStore(Protocol):
    def read_caption(self, path: PathLike) -> str: ...

    def write_caption(self, path: PathLike, text: str) -> None: ...


# ----------------------- piexif backend -----------------------

_SOI = b"\xff\xd8"
_APP0 = b"\xff\xe0"


def leading_app0(data: bytes) -> bytes:
    """The APP0 (JFIF) segment directly after SOI, or b"" if there is none."""
    if data[0:2] != _SOI or data[2:4] != _APP0 or len(data) < 6:
        return b""
    length = struct.unpack(">H", data[4:6])[0]
    return data[2:4 + length]


class PiexifCaptions:
    """Reads and writes the 0th IFD ImageDescription tag with piexif."""

    def read_caption(self, path: PathLike) -> str:
        exif = self._load(path)
        raw = exif.get("0th", {}).get(piexif.ImageIFD.ImageDescription)
        return normalize_caption(raw)

    def write_caption(self, path: PathLike, text: str) -> None:
        exif = self._load(path)
        exif.setdefault("0th", {})[piexif.ImageIFD.ImageDescription] = text.encode("utf-8")
        try:
            exif_bytes = piexif.dump(exif)
        except Exception as e:
            raise CaptionError(f"build EXIF: {e}", path) from e

        with open(path, "rb") as f:
            original = f.read()
        out = io.BytesIO()
        try:
            piexif.insert(exif_bytes, original, out)
        except Exception as e:
            raise CaptionError(f"write EXIF to JPEG structure: {e}", path) from e
        data = out.getvalue()

        # piexif drops a leading JFIF APP0 when it places the Exif APP1
        app0 = leading_app0(original)
        if app0 and data[2:4] != _APP0:
            data = data[:2] + app0 + data[2:]

        with open(path, "wb") as f:
            f.write(data)

    @staticmethod
    def _load(path: PathLike) -> dict:
        try:
            return piexif.load(str(path))
        except piexif.InvalidImageDataError as e:
            raise CaptionError(f"parse JPEG: {e}", path) from e
        except OSError:
            raise
        except Exception as e:
            raise CaptionError(f"parse EXIF: {e}", path) from e


# ----------------------- ExifTool backend -----------------------


def which(program: str) -> Optional[str]:
    return shutil.which(program)


def find_exiftool(user_path: Optional[str] = None) -> Optional[str]:
    if user_path:
        p = Path(user_path)
        if p.exists():
            return str(p)
        return None

    common = [
        which("exiftool.exe"),
        which("exiftool"),
        r"C:\Program Files\ExifTool\exiftool.exe",
        r"C:\Program Files (x86)\ExifTool\exiftool.exe",
        "/usr/local/bin/exiftool",
        "/opt/homebrew/bin/exiftool",
    ]
    for c in common:
        if c and Path(c).exists():
            return str(Path(c))
    return None


class ExifToolCaptions:
    """Caption access through an ExifTool executable."""

    def __init__(self, exe: str):
        self.exe = exe

    def read_cmd(self, path: PathLike) -> List[str]:
        # -b prints the stored bytes, so number-like captions stay verbatim
        return [self.exe, "-b", "-charset", "filename=UTF8", f"-{CAPTION_TAG}", str(path)]

    def write_cmd(self, path: PathLike, text: str) -> List[str]:
        return [
            self.exe, "-overwrite_original", "-charset", "filename=UTF8",
            f"-{CAPTION_TAG}={text}", str(path),
        ]

    def _run(self, cmd: List[str], path: PathLike) -> bytes:
        try:
            proc = subprocess.run(cmd, stdout=subprocess.PIPE, stderr=subprocess.PIPE, shell=False)
        except FileNotFoundError as e:
            raise CaptionError(f"exiftool not found at '{self.exe}'", path) from e
        if proc.returncode != 0:
            err = (proc.stderr or proc.stdout).decode("utf-8", "ignore").strip()
            raise CaptionError(f"exiftool failed: {err}", path)
        return proc.stdout

    def read_caption(self, path: PathLike) -> str:
        return normalize_caption(self._run(self.read_cmd(path), path))

    def write_caption(self, path: PathLike, text: str) -> None:
        self._run(self.write_cmd(path, text), path)


def make_store(backend: str = DEFAULT_BACKEND, exiftool: Optional[str] = None) -> CaptionStore:
    backend = (backend or DEFAULT_BACKEND).lower()
    if backend == "piexif":
        return PiexifCaptions()
    if backend == "exiftool":
        exe = find_exiftool(exiftool)
        if not exe:
            raise CaptionError("ExifTool is required for the exiftool backend and was not found.")
        return ExifToolCaptions(exe)
    raise ValueError(f"unknown backend: {backend}")
