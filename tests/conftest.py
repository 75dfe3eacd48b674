# tests/conftest.py
# Pytest fixtures and configuration for import engine tests

import os
import tempfile
import shutil
from pathlib import Path
from typing import Generator

import pytest
from PIL import Image

# Qt tests run without a display
os.environ.setdefault("QT_QPA_PLATFORM", "offscreen")


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point the config and settings singletons at throwaway files."""
    import config.import_config as import_config
    import settings_manager_qt

    monkeypatch.setattr(import_config, "_config",
                        import_config.ImportConfig(config_path=str(tmp_path / "import_config.json")))
    monkeypatch.setattr(settings_manager_qt, "_settings",
                        settings_manager_qt.SettingsManager(str(tmp_path / "settings.json")))
    yield


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Create temporary directory for test files."""
    tmpdir = tempfile.mkdtemp(prefix="camporter_test_")
    yield Path(tmpdir)
    shutil.rmtree(tmpdir, ignore_errors=True)


@pytest.fixture
def device_root(temp_dir: Path) -> Path:
    """Directory standing in for a mounted card."""
    root = temp_dir / "EOS_DIGITAL"
    root.mkdir()
    return root


@pytest.fixture
def destination(temp_dir: Path) -> Path:
    dest = temp_dir / "Pictures" / "Import"
    dest.mkdir(parents=True)
    return dest


@pytest.fixture
def sample_image(temp_dir: Path) -> Path:
    """
    Create a sample test image.

    Returns path to a 800x600 RGB JPEG image.
    """
    img_path = temp_dir / "sample_001.jpg"
    Image.new("RGB", (800, 600), color=(100, 150, 200)).save(img_path, "JPEG", quality=85)
    return img_path


@pytest.fixture
def sample_images(temp_dir: Path) -> list:
    """
    Create multiple test images with different properties.

    Returns list of paths to test images.
    """
    img_dir = temp_dir / "images"
    img_dir.mkdir(exist_ok=True)
    images = []

    # Image 1: Landscape JPEG
    img1 = img_dir / "photo_001.jpg"
    Image.new("RGB", (1920, 1080), color=(255, 0, 0)).save(img1, "JPEG")
    images.append(img1)

    # Image 2: Portrait orientation
    img2 = img_dir / "photo_002.jpg"
    Image.new("RGB", (1080, 1920), color=(0, 255, 0)).save(img2, "JPEG")
    images.append(img2)

    # Image 3: PNG with alpha
    img3 = img_dir / "photo_003.png"
    Image.new("RGBA", (800, 600), color=(0, 0, 255, 128)).save(img3, "PNG")
    images.append(img3)

    # Image 4: Smaller than the preview size
    img4 = img_dir / "photo_004.jpg"
    Image.new("RGB", (120, 90), color=(255, 0, 255)).save(img4, "JPEG")
    images.append(img4)

    return images


@pytest.fixture
def corrupt_image(temp_dir: Path) -> Path:
    """A .jpg whose body is not image data."""
    path = temp_dir / "broken.jpg"
    path.write_bytes(b"\xff\xd8\xff\xe0" + b"not really a jpeg" * 20)
    return path


@pytest.fixture
def camera_card(device_root: Path) -> dict:
    """
    Card layout as written by a camera.

    Structure:
    EOS_DIGITAL/
      DCIM/
        100CANON/
          IMG_0001.JPG
          IMG_0002.JPG
          MVI_0003.MOV
          IMG_0001.CR2        (raw, not imported)
        101CANON/
          IMG_0101.HEIC
      MISC/
        AUTPRINT.MRK
      .Trashes/
        old.jpg

    Returns dict of named paths.
    """
    dcim_a = device_root / "DCIM" / "100CANON"
    dcim_b = device_root / "DCIM" / "101CANON"
    misc = device_root / "MISC"
    trash = device_root / ".Trashes"
    for folder in (dcim_a, dcim_b, misc, trash):
        folder.mkdir(parents=True)

    paths = {
        "img1": dcim_a / "IMG_0001.JPG",
        "img2": dcim_a / "IMG_0002.JPG",
        "video": dcim_a / "MVI_0003.MOV",
        "raw": dcim_a / "IMG_0001.CR2",
        "heic": dcim_b / "IMG_0101.HEIC",
        "marker": misc / "AUTPRINT.MRK",
        "hidden": trash / "old.jpg",
    }
    Image.new("RGB", (640, 480), color=(10, 20, 30)).save(paths["img1"], "JPEG")
    Image.new("RGB", (640, 480), color=(30, 20, 10)).save(paths["img2"], "JPEG")
    paths["video"].write_bytes(b"\x00\x00\x00\x18ftypqt  " + b"\x00" * 1000)
    paths["raw"].write_bytes(b"II*\x00" + b"\x00" * 500)
    paths["heic"].write_bytes(b"\x00\x00\x00\x18ftypheic" + b"\x00" * 200)
    paths["marker"].write_text("[HDR]")
    Image.new("RGB", (32, 32)).save(paths["hidden"], "JPEG")

    # Distinct modification times, newest last
    for offset, key in enumerate(["hidden", "heic", "img1", "img2", "video"]):
        os.utime(paths[key], (1_700_000_000 + offset * 60, 1_700_000_000 + offset * 60))
    return paths


@pytest.fixture
def make_file():
    """Factory: make_file(path, size, fill=b"x") writes a file of exactly size bytes."""
    def _make(path: Path, size: int, fill: bytes = b"x") -> Path:
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes((fill * (size // len(fill) + 1))[:size])
        return path
    return _make
