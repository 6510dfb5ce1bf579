""" Disk-facing texture backend: atomic PNG writes, channel compositing, full copies and destination folder handling. """
# Everything here is blocking; the pipeline runs these functions off the event loop.

import os
import shutil
import uuid
from typing import List, Optional

from backend.image_lib import (ImageObject, convert_to_grayscale, convert_to_rgb, from_array_u8, get_size,
                               new_image_rgb, open_image, resize, save_png, to_array_u8)

from settings import CHANNEL_NAMES
from utils import (close_image_files, log)




#                                         === Atomic writes ===


def _temporary_path_for(dest_file: str) -> str:
# Unique dotfile next to the target, so the final os.replace stays on the same filesystem.
    directory, filename = os.path.split(dest_file)
    return os.path.join(directory, f".{filename}.{uuid.uuid4().hex}.tmp")


def write_png_atomic(image: ImageObject, dest_file: str) -> None:
# Encodes to a temporary file and renames it over dest_file; readers see either the old or the new file, never a partial one.
# Raises on failure, after removing the temporary file. The previous dest_file is left untouched.

    temporary_path = _temporary_path_for(dest_file)
    try:
        save_png(image, temporary_path)
        os.replace(temporary_path, dest_file)
    except BaseException:
        try:
            os.remove(temporary_path)
        except FileNotFoundError:
            pass
        except OSError as error:
            log(f"Failed to remove temp '{temporary_path}': {error}", "warn")
        raise


def _try_write_png_atomic(image: ImageObject, dest_file: str) -> bool:
    try:
        write_png_atomic(image, dest_file)
        return True
    except (OSError, ValueError) as error:
        log(f"Error: could not write '{dest_file}': {error}", "error")
        return False




#                                          === Transforms ===


def read_or_create_destination(dest_file: str, size: int) -> ImageObject:
# Returns the destination texture as an RGB size x size image.
# A missing file is created as solid black and written to disk before use, so later readers see a stable base.
# Any other access problem raises.

    if os.path.exists(dest_file):
        if not os.access(dest_file, os.R_OK | os.W_OK):
            raise PermissionError(f"Destination texture is not readable/writable: '{dest_file}'")
        image = open_image(dest_file)
        try:
            rgb_image = convert_to_rgb(image)
            if get_size(rgb_image) != (size, size):
                return resize(rgb_image, (size, size))
            return rgb_image.copy() if rgb_image is image else rgb_image
        finally:
            close_image_files([image])

    blank_image = new_image_rgb((size, size))
    write_png_atomic(blank_image, dest_file)
    return blank_image


def composite_channel(source_file: str, dest_file: str, size: int, channel: int) -> bool:
# Writes the grayscale version of source_file into a single channel of dest_file; other channels keep their values.
# Channel outside R/G/B is a no-op: nothing is read, created or written.
# Read errors propagate. Encode/rename errors are logged and return False.

    if channel not in range(len(CHANNEL_NAMES)):
        return False

    destination_image: Optional[ImageObject] = None
    source_image: Optional[ImageObject] = None
    grayscale_image: Optional[ImageObject] = None
    packed_image: Optional[ImageObject] = None
    try:
        destination_image = read_or_create_destination(dest_file, size)

        source_image = open_image(source_file)
        grayscale_image = resize(convert_to_grayscale(source_image), (size, size))

        pixels = to_array_u8(destination_image) # size x size x 3
        pixels[:, :, channel] = to_array_u8(grayscale_image)
        packed_image = from_array_u8(pixels, "RGB")

        return _try_write_png_atomic(packed_image, dest_file)

    finally:
        close_image_files([destination_image, source_image, grayscale_image, packed_image])


def copy_resized(source_file: str, dest_file: str, size: int) -> bool:
# Replaces dest_file with source_file resized to size x size, nothing from the previous destination is kept.

    source_image: Optional[ImageObject] = None
    output_image: Optional[ImageObject] = None
    try:
        source_image = open_image(source_file)
        output_image = resize(convert_to_rgb(source_image), (size, size))
        return _try_write_png_atomic(output_image, dest_file)
    finally:
        close_image_files([source_image, output_image])




#                                        === Folder handling ===


def list_folder_entries(folder_path: str) -> List[str]:
# Entry names sorted by name, which is the listing order rebuilds replay. Raises OSError if the folder cannot be listed.
    with os.scandir(folder_path) as entries:
        return sorted(entry.name for entry in entries)


def list_material_folders(source_root: str) -> List[str]:
# Top-level subfolders of the source root; files and dotfolders are skipped.
    with os.scandir(source_root) as entries:
        return sorted(entry.name for entry in entries if entry.is_dir() and not entry.name.startswith("."))


def recreate_folder(folder_path: str) -> None:
# Removes the folder with all generated textures and creates it empty, including parents.
    remove_folder(folder_path)
    os.makedirs(folder_path, exist_ok=True)


def remove_folder(folder_path: str) -> None:
    try:
        shutil.rmtree(folder_path)
    except FileNotFoundError:
        pass
