import os
from typing import List, Tuple

import numpy as np
import pytest
from PIL import Image

from backend.texture_classes import Configuration, MappingRule


def write_gray(path, value: int, size: Tuple[int, int] = (16, 16)) -> str:
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    Image.new("L", size, value).save(str(path))
    return str(path)


def write_rgb(path, color: Tuple[int, int, int], size: Tuple[int, int] = (16, 16)) -> str:
    os.makedirs(os.path.dirname(str(path)), exist_ok=True)
    Image.new("RGB", size, color).save(str(path))
    return str(path)


def read_pixels(path) -> np.ndarray:
    with Image.open(str(path)) as image:
        return np.array(image.convert("RGB"))


def read_bytes(path) -> bytes:
    with open(str(path), "rb") as f:
        return f.read()


def assert_uniform(path, color: Tuple[int, int, int]) -> None:
    pixels = read_pixels(path)
    assert (pixels == np.array(color, dtype=np.uint8)).all(), f"{path} is not uniformly {color}"


@pytest.fixture
def roots(tmp_path):
    source_root = tmp_path / "sources"
    dest_root = tmp_path / "textures"
    source_root.mkdir()
    return source_root, dest_root


@pytest.fixture
def orm_rules() -> List[MappingRule]:
    return [
        MappingRule(source="_ao", dest="ORM", size=32, channel=0),
        MappingRule(source="_rough", dest="ORM", size=32, channel=1),
        MappingRule(source="_albedo", dest="Color", size=32),
    ]


@pytest.fixture
def config(roots, orm_rules) -> Configuration:
    source_root, dest_root = roots
    return Configuration(source_path=str(source_root), dest_path=str(dest_root), mapping=orm_rules,
                         stability_threshold=0.05, poll_interval=0.01)
