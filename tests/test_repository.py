import pytest

from chapter_reader.pipeline import (
    ExtractionStatus,
    ImageStatus,
    InMemoryPipelineRepository,
    OcrBlock,
    PipelineStatus,
    SqlAlchemyPipelineRepository,
    sanitize_path_token,
)
from chapter_reader.pipeline.storage import chapter_dir_name


def _exercise_repository(repo):
    work = repo.create_work("Tower of God", "tower-of-god")
    assert repo.get_work_by_slug("tower-of-god").id == work.id

    chapter = repo.create_chapter(work.id, source_url="https://reader.example/tog/1", number="1")
    assert chapter.pipeline_status == PipelineStatus.IDLE and chapter.is_read is False

    images = repo.create_images(chapter.id, ["https://cdn.example.com/b.jpg", "https://cdn.example.com/a.jpg"])
    assert [i.position for i in images] == [1, 2]
    assert [i.status for i in images] == [ImageStatus.PENDING, ImageStatus.PENDING]

    repo.update_chapter_status(chapter.id, PipelineStatus.DOWNLOADING)
    repo.set_chapter_read(chapter.id, True)
    fetched = repo.get_chapter(chapter.id)
    assert fetched.pipeline_status == PipelineStatus.DOWNLOADING and fetched.is_read is True

    repo.update_image(images[1].id, status=ImageStatus.DOWNLOADED, filename="002.jpg")
    assert repo.count_images(chapter.id) == 2
    assert repo.count_images(chapter.id, status=ImageStatus.DOWNLOADED) == 1
    listed = repo.list_images_for_chapter(chapter.id)
    assert [i.url for i in listed] == ["https://cdn.example.com/b.jpg", "https://cdn.example.com/a.jpg"]
    assert repo.list_images_for_chapter(chapter.id, status=ImageStatus.DOWNLOADED)[0].filename == "002.jpg"

    created = repo.create_extractions(
        images[1].id,
        [OcrBlock(text="first", bbox={"x": 0, "y": 0, "w": 5, "h": 5}), OcrBlock(text="second")],
    )
    ids = [e.id for e in created]
    assert [e.text for e in repo.get_extractions(reversed(ids))] == ["second", "first"]
    repo.update_extraction_translation(
        ids[0], translated_text="primeiro", translated_lang="pt-BR", translate_status=ExtractionStatus.DONE
    )
    updated = repo.list_extractions_for_images([images[1].id])
    assert updated[0].translated_text == "primeiro" and updated[0].translate_status == ExtractionStatus.DONE
    assert updated[0].bbox == {"x": 0, "y": 0, "w": 5, "h": 5}
    assert updated[1].translate_status == ExtractionStatus.PENDING

    repo.delete_image(images[1].id)
    assert repo.get_image(images[1].id) is None
    assert repo.get_extractions(ids) == []

    repo.delete_work(work.id)
    assert repo.get_work(work.id) is None
    assert repo.get_chapter(chapter.id) is None
    assert repo.get_image(images[0].id) is None


def test_in_memory_repository_roundtrip():
    _exercise_repository(InMemoryPipelineRepository())


def test_sqlalchemy_repository_roundtrip(tmp_path):
    db_path = tmp_path / "test.db"
    _exercise_repository(SqlAlchemyPipelineRepository(f"sqlite+pysqlite:///{db_path}"))


def test_in_memory_repository_returns_copies():
    repo = InMemoryPipelineRepository()
    work = repo.create_work("Omniscient Reader", "omniscient-reader")
    chapter = repo.create_chapter(work.id, source_url="https://reader.example/orv/1")
    chapter.pipeline_status = PipelineStatus.DONE
    assert repo.get_chapter(chapter.id).pipeline_status == PipelineStatus.IDLE
    with pytest.raises(ValueError):
        repo.create_work("Omniscient Reader", "omniscient-reader")


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("12", "12"),
        ("12.5", "12.5"),
        ("Extra: Side Story!", "Extra_Side_Story_"),
        ("../../etc", ".._.._etc"),
        ("capítulo 3", "cap_tulo_3"),
    ],
)
def test_sanitize_path_token(raw, expected):
    assert sanitize_path_token(raw) == expected


def test_chapter_dir_name_falls_back_to_id():
    assert chapter_dir_name("7", 99) == "cap_7"
    assert chapter_dir_name(None, 99) == "cap_99"
    assert chapter_dir_name("", 99) == "cap_99"


def test_storage_layout_and_cleanup(storage):
    chapter_dir = storage.ensure_chapter_dir("solo-leveling", "1/2", 5)
    assert chapter_dir == storage.paths.root / "solo-leveling" / "cap_1_2"
    (chapter_dir / "001.jpg").write_bytes(b"x")
    assert storage.image_exists("solo-leveling", "1/2", 5, "001.jpg")
    assert not storage.image_exists("solo-leveling", "1/2", 5, "")

    storage.delete_image_file("solo-leveling", "1/2", 5, "001.jpg")
    assert not storage.image_exists("solo-leveling", "1/2", 5, "001.jpg")
    storage.delete_chapter_dir("solo-leveling", "1/2", 5)
    assert not chapter_dir.exists()
    storage.delete_work_dir("solo-leveling")
    storage.delete_work_dir("never-created")
    assert not (storage.paths.root / "solo-leveling").exists()
