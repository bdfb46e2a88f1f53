"""
Size-capped retention for scratch audio folders.
"""

import logging
import os
from dataclasses import dataclass

from .config import MAX_AUDIO_DIR_BYTES

logger = logging.getLogger("dubtube")


@dataclass
class FileInfo:
    path: str
    size: int
    mtime: float


def _list_files(folder: str) -> list[FileInfo]:
    infos: list[FileInfo] = []
    with os.scandir(folder) as it:
        for entry in it:
            try:
                if not entry.is_file():
                    continue
                st = entry.stat()
            except FileNotFoundError:
                # removed by a concurrent cleanup
                continue
            infos.append(FileInfo(path=entry.path, size=st.st_size, mtime=st.st_mtime))
    return infos


def cleanup_folder(folder: str, max_bytes: int = MAX_AUDIO_DIR_BYTES) -> int:
    """Delete oldest files until ``folder`` is at most ``max_bytes``. Returns bytes deleted."""
    if not os.path.isdir(folder):
        return 0
    files = _list_files(folder)
    current = sum(f.size for f in files)
    if current < max_bytes:
        logger.debug("Folder %s size (%d bytes) is under limit", folder, current)
        return 0

    logger.info("Cleaning up folder %s (current size: %d bytes)", folder, current)
    deleted = 0
    for info in sorted(files, key=lambda f: f.mtime):
        if current - deleted <= max_bytes:
            break
        try:
            os.unlink(info.path)
        except OSError as e:
            logger.error("Error deleting file %s: %s", info.path, e)
            continue
        deleted += info.size
        logger.debug("Deleted file: %s", info.path)
    logger.info("Cleanup complete. Deleted %d bytes", deleted)
    return deleted


def cleanup_audio_folders(audio_dir: str, max_bytes: int = MAX_AUDIO_DIR_BYTES) -> int:
    """Apply the retention cap to the temp/ and tts/ scratch folders."""
    total = 0
    for sub in ("temp", "tts"):
        folder = os.path.join(audio_dir, sub)
        try:
            total += cleanup_folder(folder, max_bytes)
        except OSError as e:
            logger.error("Error during cleanup of %s: %s", folder, e)
    return total
