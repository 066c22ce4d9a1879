"""Tests for Karl reference image lookup."""
from pathlib import Path

import pytest

from karl_selfie.core.errors import ReferenceAssetMissing
from karl_selfie.services.reference import (
    find_reference_image,
    load_reference_asset,
    mime_type_for,
)


@pytest.fixture
def ref_dir(tmp_path: Path) -> Path:
    d = tmp_path / "Referenz"
    d.mkdir()
    return d


class TestFindReferenceImage:
    def test_candidate_priority(self, ref_dir: Path) -> None:
        (ref_dir / "karl1.jpg").write_bytes(b"1")
        (ref_dir / "karl.jpg").write_bytes(b"2")
        (ref_dir / "karl.png").write_bytes(b"3")
        assert find_reference_image(ref_dir).name == "karl.png"

    def test_later_candidate_used_when_first_missing(self, ref_dir: Path) -> None:
        (ref_dir / "karl3.jpg").write_bytes(b"3")
        (ref_dir / "karl1.png").write_bytes(b"1")
        assert find_reference_image(ref_dir).name == "karl1.png"

    def test_fallback_is_first_image_by_name(self, ref_dir: Path) -> None:
        (ref_dir / "zebra.png").write_bytes(b"z")
        (ref_dir / "Portrait.JPG").write_bytes(b"p")
        (ref_dir / "notes.txt").write_text("not an image")
        assert find_reference_image(ref_dir).name == "Portrait.JPG"

    def test_fallback_ignores_non_images(self, ref_dir: Path) -> None:
        (ref_dir / "a.txt").write_text("x")
        (ref_dir / "b.webp").write_bytes(b"w")
        assert find_reference_image(ref_dir).name == "b.webp"

    def test_empty_directory_raises(self, ref_dir: Path) -> None:
        with pytest.raises(ReferenceAssetMissing):
            find_reference_image(ref_dir)

    def test_missing_directory_raises(self, tmp_path: Path) -> None:
        with pytest.raises(ReferenceAssetMissing) as exc_info:
            find_reference_image(tmp_path / "nowhere")
        assert exc_info.value.status_code == 500


class TestMimeType:
    @pytest.mark.parametrize(
        "name, expected",
        [
            ("karl.jpg", "image/jpeg"),
            ("karl.JPEG", "image/jpeg"),
            ("karl.png", "image/png"),
            ("karl.webp", "image/webp"),
            ("karl.gif", "image/jpeg"),
            ("karl", "image/jpeg"),
        ],
    )
    def test_mime_type_for(self, name: str, expected: str) -> None:
        assert mime_type_for(Path(name)) == expected


def test_load_reference_asset_reads_bytes(ref_dir: Path) -> None:
    (ref_dir / "karl.jpg").write_bytes(b"jpeg-bytes")

    asset = load_reference_asset(ref_dir)

    assert asset.path == ref_dir / "karl.jpg"
    assert asset.mime_type == "image/jpeg"
    assert asset.data == b"jpeg-bytes"
    assert asset.as_inline().data == b"jpeg-bytes"


def test_load_reference_asset_reads_fresh_each_time(ref_dir: Path) -> None:
    path = ref_dir / "karl.png"
    path.write_bytes(b"old")
    assert load_reference_asset(ref_dir).data == b"old"
    path.write_bytes(b"new")
    assert load_reference_asset(ref_dir).data == b"new"
