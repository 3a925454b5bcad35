from __future__ import annotations

from pathlib import Path

import pytest

from wasmstage.errors import MissingArtifact, PublishError
from wasmstage.models import ArtifactSpec
from wasmstage.staging import ArtifactStager


def _artifacts(build_dir: Path) -> list[ArtifactSpec]:
    return [
        ArtifactSpec(build_dir / "ClassiCube.js", "ClassiCube.js"),
        ArtifactSpec(build_dir / "ClassiCube.wasm", "ClassiCube.wasm"),
    ]


def test_stage_copies_all_artifacts(tmp_path: Path) -> None:
    build_dir = tmp_path / "build" / "web"
    build_dir.mkdir(parents=True)
    (build_dir / "ClassiCube.js").write_text("glue")
    (build_dir / "ClassiCube.wasm").write_bytes(b"\0asm")
    publish = tmp_path / "public"

    result = ArtifactStager(publish).stage(_artifacts(build_dir))

    assert result.copied == [publish / "ClassiCube.js", publish / "ClassiCube.wasm"]
    assert (publish / "ClassiCube.wasm").read_bytes() == b"\0asm"
    assert (publish / "static").is_dir()


def test_restaging_overwrites_previous_copy(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "ClassiCube.js").write_text("new")
    (build_dir / "ClassiCube.wasm").write_bytes(b"new")
    publish = tmp_path / "public"
    (publish / "static").mkdir(parents=True)
    (publish / "ClassiCube.js").write_text("old")

    ArtifactStager(publish).stage(_artifacts(build_dir))

    assert (publish / "ClassiCube.js").read_text() == "new"


def test_missing_second_artifact_after_first_is_copied(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "ClassiCube.js").write_text("glue")
    publish = tmp_path / "public"

    with pytest.raises(MissingArtifact) as excinfo:
        ArtifactStager(publish).stage(_artifacts(build_dir))

    assert excinfo.value.name == "ClassiCube.wasm"
    assert excinfo.value.exit_code == 12
    assert (publish / "ClassiCube.js").read_text() == "glue"
    assert not (publish / "ClassiCube.wasm").exists()


def test_missing_first_artifact_stops_before_later_ones(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "ClassiCube.wasm").write_bytes(b"\0asm")
    publish = tmp_path / "public"

    with pytest.raises(MissingArtifact) as excinfo:
        ArtifactStager(publish).stage(_artifacts(build_dir))

    assert excinfo.value.name == "ClassiCube.js"
    assert sorted(p.name for p in publish.iterdir()) == ["static"]


def test_publish_path_occupied_by_file_is_publish_error(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "ClassiCube.js").write_text("glue")
    (build_dir / "ClassiCube.wasm").write_bytes(b"\0asm")
    publish = tmp_path / "public"
    publish.write_text("not a directory")

    with pytest.raises(PublishError) as excinfo:
        ArtifactStager(publish).stage(_artifacts(build_dir))

    assert excinfo.value.exit_code == 13
    assert excinfo.value.path == str(publish)


def test_unwritable_destination_is_publish_error(tmp_path: Path) -> None:
    build_dir = tmp_path / "build"
    build_dir.mkdir()
    (build_dir / "ClassiCube.js").write_text("glue")
    (build_dir / "ClassiCube.wasm").write_bytes(b"\0asm")
    publish = tmp_path / "public"
    (publish / "ClassiCube.js").mkdir(parents=True)

    with pytest.raises(PublishError) as excinfo:
        ArtifactStager(publish).stage(_artifacts(build_dir))

    assert excinfo.value.path == str(publish / "ClassiCube.js")
