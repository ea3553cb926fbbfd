"""Deterministic tar packing and unpacking of directory blobs.

A directory blob is addressed by the sha256 of its tar stream, so the
stream must be byte-identical for identical trees:

- entries are walked in lexical order, each directory before its contents;
- names are POSIX paths relative to the packed root (the root itself is
  not an entry);
- mtime, uid/gid and user/group names are zeroed, only permission bits are
  kept from the mode.

Only regular files, directories and symlinks are packed. Unpacking mirrors
that set and skips anything else with a warning.
"""

import logging
import os
import shutil
import stat
import tarfile
import zipfile
import zlib
from pathlib import Path, PurePosixPath
from typing import BinaryIO, Iterable, Iterator, Optional, Tuple, Union

from .constants import COPY_BUFFER_SIZE
from .errors import PackagingError, UnpackError
from .ignore import ExcludeSpec

logger = logging.getLogger(__name__)

TAR_FORMAT = tarfile.PAX_FORMAT


def _normalized(name: str) -> tarfile.TarInfo:
    """Create a TarInfo with every machine-specific field reset."""
    info = tarfile.TarInfo(name)
    info.mtime = 0
    info.uid = 0
    info.gid = 0
    info.uname = ""
    info.gname = ""
    return info


def _walk(root: Path, rel: str, spec: ExcludeSpec) -> Iterator[Tuple[str, os.DirEntry]]:
    """Yield (relpath, entry) depth-first in lexical order."""
    with os.scandir(root / rel if rel else root) as it:
        entries = sorted(it, key=lambda e: e.name)

    for entry in entries:
        relpath = f"{rel}/{entry.name}" if rel else entry.name
        is_dir = entry.is_dir(follow_symlinks=False)
        if spec.is_excluded(relpath, is_dir=is_dir):
            continue
        yield relpath, entry
        if is_dir:
            yield from _walk(root, relpath, spec)


def _entry_tarinfo(relpath: str, entry: os.DirEntry) -> Optional[tarfile.TarInfo]:
    st = entry.stat(follow_symlinks=False)
    info = _normalized(relpath)
    info.mode = stat.S_IMODE(st.st_mode)

    if entry.is_symlink():
        info.type = tarfile.SYMTYPE
        info.linkname = os.readlink(entry.path)
    elif entry.is_dir(follow_symlinks=False):
        info.type = tarfile.DIRTYPE
    elif entry.is_file(follow_symlinks=False):
        info.type = tarfile.REGTYPE
        info.size = st.st_size
    else:
        return None
    return info


def pack_directory(src: Union[str, Path], sink: BinaryIO, exclude: Iterable[str] = ()) -> None:
    """Stream a directory as a deterministic tar into sink.

    Args:
        src: Directory to pack
        sink: Anything with a write(bytes) method, usually a LocalBlob
        exclude: Extra gitignore-style patterns, on top of src/.blobignore

    Raises:
        PackagingError: If src is not a directory or any read/write fails
    """
    root = Path(src)
    # ensure the src actually exists before trying to tar it
    if not root.is_dir():
        raise PackagingError(f"Unable to tar files - {root} is not a directory")

    try:
        spec = ExcludeSpec(root, exclude)
        with tarfile.open(fileobj=sink, mode="w|", format=TAR_FORMAT) as tar:
            for relpath, entry in _walk(root, "", spec):
                info = _entry_tarinfo(relpath, entry)
                if info is None:
                    logger.warning("Tar: skipping unsupported file type: %s", entry.path)
                    continue
                if info.isreg():
                    with open(entry.path, "rb") as f:
                        tar.addfile(info, f)
                else:
                    tar.addfile(info)
    except (OSError, tarfile.TarError) as e:
        raise PackagingError(f"Failed to tar {root}: {e}") from e


def zip_to_tar(source: Union[str, Path, BinaryIO], sink: BinaryIO) -> None:
    """Rewrite a zip archive as a deterministic tar stream.

    Archive order and full member paths are preserved. Permission bits come
    from the zip's unix attributes, defaulting to 0o644 for files and 0o755
    for directories. Unix symlink members become symlinks.

    Raises:
        PackagingError: If the zip can't be read or the sink write fails
    """
    try:
        with zipfile.ZipFile(source) as zf, \
                tarfile.open(fileobj=sink, mode="w|", format=TAR_FORMAT) as tar:
            for zinfo in zf.infolist():
                name = zinfo.filename.lstrip("/").rstrip("/")
                if not name:
                    continue

                unix_mode = zinfo.external_attr >> 16
                info = _normalized(name)
                perms = stat.S_IMODE(unix_mode)

                if zinfo.is_dir():
                    info.type = tarfile.DIRTYPE
                    info.mode = perms or 0o755
                    tar.addfile(info)
                elif stat.S_ISLNK(unix_mode):
                    info.type = tarfile.SYMTYPE
                    info.mode = perms or 0o777
                    info.linkname = zf.read(zinfo).decode("utf-8")
                    tar.addfile(info)
                else:
                    info.type = tarfile.REGTYPE
                    info.mode = perms or 0o644
                    info.size = zinfo.file_size
                    with zf.open(zinfo) as fr:
                        tar.addfile(info, fr)
    except (OSError, zipfile.BadZipFile, tarfile.TarError) as e:
        raise PackagingError(f"Could not convert zip to tar: {e}") from e


def _safe_target(root: Path, name: str) -> Path:
    """Resolve an archive member name under root, refusing escapes."""
    rel = PurePosixPath(name)
    if rel.is_absolute() or ".." in rel.parts:
        raise UnpackError(f"Unsafe path in archive: {name!r}")
    if not rel.parts:
        return root

    target = root.joinpath(*rel.parts)
    # Catch escapes through symlinks created by earlier members
    parent = target.parent.resolve()
    if parent != root and root not in parent.parents:
        raise UnpackError(f"Archive member escapes destination: {name!r}")
    return target


def unpack_tar(dst: Union[str, Path], fileobj: BinaryIO, compressed: bool = True) -> None:
    """Recreate a (gzip) tar stream under dst.

    Directories are created if missing, regular files written with their
    permission bits, symlinks created as-is. Unknown entry types are skipped
    with a warning.

    Raises:
        UnpackError: If the stream is corrupt or a member escapes dst
    """
    dst = Path(dst)
    dst.mkdir(parents=True, exist_ok=True)
    root = dst.resolve()
    mode = "r|gz" if compressed else "r|"

    try:
        with tarfile.open(fileobj=fileobj, mode=mode) as tar:
            for member in tar:
                target = _safe_target(root, member.name)

                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)

                elif member.isreg():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    # Replace, never write through, an existing symlink
                    if target.is_symlink():
                        target.unlink()
                    src = tar.extractfile(member)
                    with open(target, "wb") as out:
                        shutil.copyfileobj(src, out, COPY_BUFFER_SIZE)
                    os.chmod(target, member.mode & 0o7777)

                elif member.issym():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    os.symlink(member.linkname, target)

                else:
                    logger.warning("Tar: ignoring unknown tar entry %s (type %r)", member.name, member.type)
    except (OSError, EOFError, zlib.error, tarfile.TarError) as e:
        raise UnpackError(f"Failed to unpack into {dst}: {e}") from e


__all__ = ["pack_directory", "unpack_tar", "zip_to_tar"]
