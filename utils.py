""" Texture utilities: logging, mapping lookup and small helpers shared by the pipeline and the watcher. """

import asyncio
import mimetypes
import os
from contextlib import asynccontextmanager
from typing import AsyncIterator, Dict, Hashable, Iterable, Optional, Sequence, Set, Tuple

from backend.texture_classes import MappingRule

from backend.image_lib import close_image


mimetypes.add_type("image/x-tga", ".tga")
# Not every platform's mime table knows .tga, which is a common texture source format.


LOG_TYPES: list[str] = ["info", "warn", "error", "skip", "complete"]

def log(message: str, message_kind: LOG_TYPES = "info") -> None:
# Maps different log types.

    if message == "":
        print("")
        return

    if message_kind not in LOG_TYPES:
        message_kind = "info"

    if message_kind == "info":
        print(f"   {message}")
    elif message_kind == "warn":
        print(f"⚠️ {message}")
    elif message_kind == "error":
        print(f"⛔ {message}")
    elif message_kind == "skip":
        print(f"❌ {message}")
    elif message_kind == "complete":
        print(f"✅ {message}")
    else:
        print(message)  # fallback

    # Print styles:
    # info: 3 whitespaces + message
    # warn: ⚠️ + message
    # error: ⛔ + message
    # skip: ❌ + message
    # complete: ✅ + message


def resolve_mapping(rules: Sequence[MappingRule], filename: str) -> Optional[MappingRule]:
# Returns the first rule whose source pattern is contained in the filename.
# Order matters: with ["a" -> X, "ab" -> Y], "ab.png" always resolves to X.

    for rule in rules:
        if rule.source in filename:
            return rule
    return None


def is_image(file_path: str) -> bool:
# Classifies by mime type guessed from the extension, e.g., "image/png".
    mime_type, _ = mimetypes.guess_type(file_path)
    return bool(mime_type) and mime_type.startswith("image/")


def is_hidden_path(path: str) -> bool:
# True if any path segment is a dotfile/dotfolder.
    return any(segment.startswith(".") for segment in path.replace("\\", "/").split("/") if segment not in ("", ".", ".."))


def split_material_path(source_root: str, file_path: str) -> Optional[Tuple[str, str]]:
# Splits sourcePath/<material>/<file> into (material, file).
# Returns None for files in the root itself or nested deeper, those are not part of any material folder.

    try:
        relative_path: str = os.path.relpath(os.path.abspath(file_path), os.path.abspath(source_root))
    except ValueError:
        return None
    # Different drives on Windows.

    segments = [segment for segment in relative_path.replace("\\", "/").split("/") if segment]
    if len(segments) != 2 or segments[0] == "..":
        return None
    material_folder, filename = segments
    return material_folder, filename


def split_material_folder(source_root: str, folder_path: str) -> Optional[str]:
# Returns the material name if folder_path is sourcePath/<material> itself, otherwise None.

    try:
        relative_path: str = os.path.relpath(os.path.abspath(folder_path), os.path.abspath(source_root))
    except ValueError:
        return None

    segments = [segment for segment in relative_path.replace("\\", "/").split("/") if segment not in ("", ".")]
    if len(segments) != 1 or segments[0] == "..":
        return None
    return segments[0]


def close_image_files(images: Iterable[Optional[object]]) -> None:
# Safely closes all opened images even if there is an error during image processing.

    processed_ids: Set[int] = set()
    for image in images:
        if image is None:
            continue
        image_id = id(image)
        if image_id in processed_ids:
            continue
        processed_ids.add(image_id)
        try:
            close_image(image) # Function from image_lib
        except (OSError, ValueError):
            pass


class KeyedLocks:
    """ One asyncio.Lock per key, created on first use and dropped once nobody holds or waits for it. Waiters acquire in FIFO order. """

    def __init__(self) -> None:
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._users: Dict[Hashable, int] = {} # Holder + waiters per key.

    def __len__(self) -> int:
        return len(self._locks)

    @asynccontextmanager
    async def hold(self, key: Hashable) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if self._users[key] == 0:
                del self._users[key]
                del self._locks[key]
