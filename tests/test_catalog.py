import pytest

from school_library.book import BookStatus
from school_library.errors import ConflictError, NotFoundError, ValidationError
from school_library.person import Identity


def test_add_book_starts_fully_available(catalog):
    book = catalog.add_book("BK_S001", "Advanced Physics", 3, school_level="Secondary", author="Author X")
    assert book.id is not None
    assert (book.quantity, book.borrowed_count, book.available_qty) == (3, 0, 3)
    assert book.status is BookStatus.AVAILABLE
    assert catalog.get_book(book.id).to_dict()["school_level"] == "Secondary"


def test_add_book_with_no_copies_is_unavailable(catalog):
    assert catalog.add_book("BK_EMPTY", "On Order", 0).status is BookStatus.UNAVAILABLE


def test_duplicate_barcode_conflicts(catalog, book):
    with pytest.raises(ConflictError):
        catalog.add_book("BK_P001", "Another Title", 1)


@pytest.mark.parametrize("quantity", [-1, "many"])
def test_bad_quantity_rejected(catalog, quantity):
    with pytest.raises(ValidationError):
        catalog.add_book("BK_BAD", "Bad Stock", quantity)


def test_add_book_validates_fields(catalog):
    with pytest.raises(ValidationError):
        catalog.add_book("", "No Barcode", 1)
    with pytest.raises(ValidationError):
        catalog.add_book("BK_X", "   ", 1)
    with pytest.raises(ValidationError):
        catalog.add_book("BK_X", "Wrong School", 1, school_level="University")


def test_update_quantity_recomputes_availability(catalog, ledger, book, student):
    ledger.borrow(book.id, Identity.of(student))

    updated = catalog.update_book(book.id, quantity=1)
    assert (updated.quantity, updated.borrowed_count, updated.available_qty) == (1, 1, 0)
    assert updated.status is BookStatus.UNAVAILABLE

    updated = catalog.update_book(book.id, quantity=4, name="Primary Science Vol 2")
    assert updated.available_qty == 3
    assert updated.status is BookStatus.AVAILABLE
    assert updated.name == "Primary Science Vol 2"


def test_quantity_below_borrowed_count_conflicts(catalog, ledger, book, student, teacher):
    ledger.borrow(book.id, Identity.of(student))
    ledger.borrow(book.id, Identity.of(teacher))
    with pytest.raises(ConflictError):
        catalog.update_book(book.id, quantity=1)
    assert catalog.get_book(book.id).quantity == 5


def test_update_rejects_unknown_fields_and_missing_book(catalog, book):
    with pytest.raises(ValidationError):
        catalog.update_book(book.id, available_qty=10)
    with pytest.raises(NotFoundError):
        catalog.update_book(999, name="Ghost")


def test_update_to_taken_barcode_conflicts(catalog, book):
    other = catalog.add_book("BK_P002", "Fun with Math", 1)
    with pytest.raises(ConflictError):
        catalog.update_book(other.id, barcode="BK_P001")


def test_delete_refused_while_on_loan(catalog, ledger, book, student):
    receipt = ledger.borrow(book.id, Identity.of(student))
    with pytest.raises(ConflictError, match="active borrows"):
        catalog.delete_book(book.id)

    ledger.return_book(receipt.borrow_id, Identity.of(student))
    catalog.delete_book(book.id)
    with pytest.raises(NotFoundError):
        catalog.get_book(book.id)


def test_find_by_barcode(catalog, book):
    assert catalog.find_by_barcode(" BK_P001 ").id == book.id
    with pytest.raises(NotFoundError):
        catalog.find_by_barcode("BK_NONE")


def test_single_book_lookups_respect_school_level(catalog, book):
    assert catalog.get_book(book.id, "Primary").id == book.id
    with pytest.raises(NotFoundError):
        catalog.get_book(book.id, "Secondary")
    with pytest.raises(NotFoundError):
        catalog.find_by_barcode("BK_P001", "Secondary")


def test_book_str(book):
    assert str(book) == "Primary Science Vol 1 [BK_P001] 5/5 available"


def test_list_books_search_and_filters(catalog, ledger, student):
    catalog.add_book("BK_P002", "fun with Math", 2, author="Author B")
    lone = catalog.add_book("BK_P003", "Atlas", 1, author="Cartographer")
    catalog.add_book("BK_S001", "Advanced Physics", 2, school_level="Secondary")
    ledger.borrow(lone.id, Identity.of(student))

    assert [b.name for b in catalog.list_books(school_level="Primary")] == ["Atlas", "fun with Math"]
    assert [b.barcode for b in catalog.list_books(search="author b")] == ["BK_P002"]
    assert [b.barcode for b in catalog.list_books(status="Unavailable")] == ["BK_P003"]
    with pytest.raises(ValidationError):
        catalog.list_books(status="Lost")
