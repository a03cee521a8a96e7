import os

import pytest

from school_library.ebooks import EbookShelf
from school_library.errors import NotFoundError, ValidationError
from school_library.person import Identity


@pytest.fixture
def shelf(db_file, tmp_path):
    ebook_dir = tmp_path / "ebooks"
    ebook_dir.mkdir()
    (ebook_dir / "physics.pdf").write_bytes(b"%PDF-1.4 physics")
    return EbookShelf(db_file, str(ebook_dir))


def test_add_and_list(shelf):
    ebook = shelf.add_ebook("Physics Notes", "physics.pdf", "Science")
    shelf.add_ebook("Poems", "poems.pdf")

    assert ebook.to_dict()["category"] == "Science"
    assert "file_path" not in ebook.to_dict()
    assert [e.title for e in shelf.list_ebooks(category="Science")] == ["Physics Notes"]
    assert [e.title for e in shelf.list_ebooks(search="poe")] == ["Poems"]
    assert len(shelf.list_ebooks()) == 2


@pytest.mark.parametrize("path", ["", "notes.txt", "/etc/book.pdf", "../outside.pdf"])
def test_add_rejects_bad_paths(shelf, path):
    with pytest.raises(ValidationError):
        shelf.add_ebook("Bad", path)


def test_open_for_reading_logs_reader(shelf, student):
    ebook = shelf.add_ebook("Physics Notes", "physics.pdf")
    path = shelf.open_for_reading(ebook.id, Identity.of(student))

    assert os.path.basename(path) == "physics.pdf"
    logs = shelf.read_logs()
    assert len(logs) == 1
    assert logs[0]["title"] == "Physics Notes"
    assert logs[0]["user_name"] == "Ada Lovelace"


def test_open_missing_file(shelf, student):
    ebook = shelf.add_ebook("Lost", "lost.pdf")
    with pytest.raises(NotFoundError, match="file"):
        shelf.open_for_reading(ebook.id, Identity.of(student))
    assert shelf.read_logs() == []


def test_delete_removes_file_and_logs(shelf, student):
    ebook = shelf.add_ebook("Physics Notes", "physics.pdf")
    path = shelf.open_for_reading(ebook.id, Identity.of(student))

    shelf.delete_ebook(ebook.id)

    assert not os.path.exists(path)
    assert shelf.read_logs() == []
    with pytest.raises(NotFoundError):
        shelf.get_ebook(ebook.id)
    with pytest.raises(NotFoundError):
        shelf.delete_ebook(ebook.id)
