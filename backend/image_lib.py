""" Image processing backend. Currently implemented using Pillow (PIL). PIL exports 8bit images only."""



#                                           === Backend ===

from array import array
from typing import Any, Tuple, TypeAlias

import numpy as np
from PIL import Image as _PIL
from PIL.Image import Image as PILImage
from PIL import Image as PILImageModule

ImageObject: TypeAlias = PILImage


def close_image(image: object) -> None:
    close = getattr(image, "close", None)
    if callable(close):
        close()


def from_array_u8(data: Any, mode: str) -> ImageObject:
# Creates an image from a uint8 numpy array, HxW for "L" or HxWx3 for "RGB".
    image = PILImageModule.fromarray(np.ascontiguousarray(data, dtype=np.uint8))
    return image if image.mode == mode else image.convert(mode)


def to_array_u8(image: ImageObject) -> np.ndarray:
# Returns a writable copy of the raw pixels, row-major: HxW for "L", HxWx3 for "RGB".
    return np.array(image, dtype=np.uint8)


def get_image_mode(image: Any) -> str:
# Return the Pillow image mode: "RGB", "RGBA", "L"
    return image.mode


def get_size(image: ImageObject) -> Tuple[int, int]:
# Returns the image size as (width, height)
    return image.size


def new_image_rgb(size: Tuple[int, int], fill: Tuple[int, int, int] = (0, 0, 0)) -> ImageObject:
# Create a new solid 8bit RGB image.
    return _PIL.new("RGB", size, fill)


def open_image(path: str) -> ImageObject:
# Opens and fully decodes the file, so the file handle is released right away.
    with _PIL.open(path) as image:
        image.load()
        return image.copy()


def resize(image: ImageObject, size: Tuple[int, int]) -> ImageObject:
# Resize an image using bilinear resampling. Aspect ratio is not preserved.
    return image.resize(size, _PIL.BILINEAR)


def save_png(image: Any, path: str) -> None:
# Format is explicit, so temporary file names with any extension still encode as PNG.
    image.save(path, format="PNG")




#                                           === Utils ===



def is_grayscale(image: ImageObject) -> bool:
# Returns True if the image is of type grayscale image.

    mode = get_image_mode(image)
    return mode in ("L", "LA") or mode == "I" or str(mode).startswith("I;16")


def convert_to_grayscale(image: ImageObject) -> ImageObject:
# Converts an image to 8-bit grayscale.
    mode = image.mode
    if mode == "L":
        return image
    if mode in ("I", "I;16", "I;16L", "I;16B"):
        return _16_to_8bit(image)
    return image.convert("L")


def convert_to_rgb(image: ImageObject) -> ImageObject:
# Converts an image to 8-bit RGB; alpha is dropped, 16bit grayscale is scaled down first.
    if image.mode == "RGB":
        return image
    if is_grayscale(image) and image.mode not in ("L", "LA"):
        return _16_to_8bit(image).convert("RGB")
    return image.convert("RGB")


def _16_to_8bit(image: ImageObject) -> ImageObject:
# Scales down 16bit range to a 8bit, so values are properly maintained instead of being clipped.

# Preparing the image:
    if image.mode == "I":
        img16 = image.convert("I;16")
    elif image.mode in ("I;16", "I;16L", "I;16B"):
        img16 = image if image.mode == "I;16" else image.convert("I;16")
    # Normalizes the image type to 16bit LE.
    else:
        return image.convert("L")
    # If the image is just 8bit grayscale, passes it though.

    raw = img16.tobytes("raw", "I;16")  # LE 16bit
    data16 = array("H")
    data16.frombytes(raw)

# Scaling:
    data8 = bytearray((v >> 8) & 0xFF for v in data16)
    return PILImageModule.frombytes("L", img16.size, bytes(data8))
