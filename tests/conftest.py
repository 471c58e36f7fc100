from pathlib import Path

import pytest
from PIL import Image

from dio.settings import ConvertSettings


def write_image(path: Path, mode: str = "RGB", size=(64, 64), color="red", fmt: str = "BMP") -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    Image.new(mode, size, color=color).save(path, format=fmt)
    return path


@pytest.fixture
def dirs(tmp_path):
    input_dir = tmp_path / "input"
    output_dir = tmp_path / "output"
    input_dir.mkdir()
    return input_dir, output_dir


@pytest.fixture
def settings(dirs):
    input_dir, output_dir = dirs
    return ConvertSettings(input_dir=input_dir, output_dir=output_dir, workers=4)


@pytest.fixture
def make_image():
    return write_image
