"""Tests for guide database functionality."""

import pytest
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError

from faqvault.models import GameStatus, GuideFormat
from faqvault.storage.database import status_for_percentage


def _create_guide(db, title="Chrono Trigger Walkthrough", **kwargs):
    defaults = {
        "content": "Defeat Lavos at the end of time.",
        "format": "txt",
        "file_path": f"/guides/{title}.txt",
    }
    defaults.update(kwargs)
    return db.create_guide(title=title, **defaults)


def test_create_and_get_guide(tmp_db):
    """Test creating a guide and reading it back."""
    guide = _create_guide(tmp_db, metadata={"tags": ["RPG"], "author": "Someone"})

    assert len(guide.id) == 21

    fetched = tmp_db.get_guide(guide.id)
    assert fetched is not None
    assert fetched.title == "Chrono Trigger Walkthrough"
    assert fetched.format == "txt"
    assert fetched.tags == ["RPG"]
    assert fetched.meta["author"] == "Someone"
    assert fetched.created_at is not None


def test_create_guide_accepts_enum_format(tmp_db):
    """Test GuideFormat members are stored as their tag."""
    guide = _create_guide(tmp_db, format=GuideFormat.MARKDOWN)
    assert tmp_db.get_guide(guide.id).format == "md"


def test_create_guide_rejects_unknown_format(tmp_db):
    """Test the format check constraint rejects unknown tags."""
    with pytest.raises(IntegrityError):
        _create_guide(tmp_db, format="doc")


def test_create_guide_rejects_missing_title(tmp_db):
    """Test a guide without a title is rejected."""
    with pytest.raises(IntegrityError):
        _create_guide(tmp_db, title=None, file_path="/guides/none.txt")

    assert tmp_db.count_guides() == 0


def test_update_guide_ignores_unknown_fields(tmp_db):
    """Test update_guide returns False when nothing applicable is given."""
    guide = _create_guide(tmp_db)
    assert tmp_db.update_guide(guide.id, nonsense=1) is False
    assert tmp_db.update_guide("missing-id", title="x") is False


def test_update_last_read_position(tmp_db):
    """Test the read cursor can be updated."""
    guide = _create_guide(tmp_db)
    assert tmp_db.update_last_read_position(guide.id, 420)
    assert tmp_db.get_guide(guide.id).last_read_position == 420


def test_set_guide_metadata_normalizes_tags(tmp_db):
    """Test metadata updates normalize the tags field."""
    guide = _create_guide(tmp_db)
    tmp_db.set_guide_metadata(guide.id, {"tags": "RPG, Boss Guide, RPG", "author": ""})

    fetched = tmp_db.get_guide(guide.id)
    assert fetched.tags == ["RPG", "Boss Guide"]
    assert "author" not in fetched.meta


def test_transaction_rolls_back_on_error(tmp_db):
    """Test that a failing transaction leaves no partial writes."""
    with pytest.raises(IntegrityError):
        with tmp_db.transaction() as session:
            _create_guide(tmp_db, title="First", session=session)
            _create_guide(tmp_db, title="Second", format="doc", session=session)

    assert tmp_db.count_guides() == 0


def test_existing_file_paths(tmp_db):
    """Test lookup of already imported file paths."""
    _create_guide(tmp_db, title="A", file_path="/g/a.txt")
    _create_guide(tmp_db, title="B", file_path="/g/b.txt")

    found = tmp_db.existing_file_paths(["/g/a.txt", "/g/c.txt"])
    assert found == {"/g/a.txt"}
    assert tmp_db.existing_file_paths([]) == set()


def test_get_guides_by_ids_preserves_order(tmp_db):
    """Test guides are returned in the order of the requested ids."""
    a = _create_guide(tmp_db, title="A")
    b = _create_guide(tmp_db, title="B")
    c = _create_guide(tmp_db, title="C")

    guides = tmp_db.get_guides_by_ids([c.id, a.id, "missing", b.id])
    assert [g.title for g in guides] == ["C", "A", "B"]


@pytest.mark.parametrize(
    "percentage,status",
    [
        (0, GameStatus.NOT_STARTED),
        (100, GameStatus.COMPLETED),
        (0.5, GameStatus.IN_PROGRESS),
        (99.9, GameStatus.IN_PROGRESS),
        (-10, GameStatus.NOT_STARTED),
        (150, GameStatus.COMPLETED),
    ],
)
def test_status_for_percentage(percentage, status):
    """Test status derivation from completion percentage, with clamping."""
    assert status_for_percentage(percentage) == status


def test_set_completion_percentage_derives_status(tmp_db):
    """Test completion updates keep status consistent and clamp out-of-range values."""
    game = tmp_db.create_game(title="Metroid")
    assert game.status == "not_started"

    tmp_db.set_completion_percentage(game.id, 40)
    fetched = tmp_db.get_game(game.id)
    assert fetched.completion_percentage == 40
    assert fetched.status == "in_progress"

    tmp_db.set_completion_percentage(game.id, 140)
    fetched = tmp_db.get_game(game.id)
    assert fetched.completion_percentage == 100
    assert fetched.status == "completed"

    tmp_db.set_completion_percentage(game.id, -5)
    fetched = tmp_db.get_game(game.id)
    assert fetched.completion_percentage == 0
    assert fetched.status == "not_started"


def test_create_game_clamps_percentage(tmp_db):
    """Test a new game's percentage is clamped before storage."""
    game = tmp_db.create_game(title="Contra", completion_percentage=250)
    assert game.completion_percentage == 100
    assert game.status == "completed"


def test_update_game_rejects_invalid_status(tmp_db):
    """Test the status check constraint rejects unknown values."""
    game = tmp_db.create_game(title="Contra")
    with pytest.raises(IntegrityError):
        tmp_db.update_game(game.id, status="abandoned")


def test_find_game_by_external_id(tmp_db):
    """Test games can be found by the archive id in their metadata."""
    game = tmp_db.create_game(title="Zelda", metadata={"external_id": "1234"})

    found = tmp_db.find_game_by_external_id("1234")
    assert found is not None
    assert found.id == game.id
    assert found.external_id == "1234"
    assert tmp_db.find_game_by_external_id("9999") is None


def test_duplicate_external_id_rejected(tmp_db):
    """Test at most one game exists per external id."""
    tmp_db.create_game(title="Zelda", metadata={"external_id": "1234"})
    with pytest.raises(IntegrityError):
        tmp_db.create_game(title="Zelda again", metadata={"external_id": "1234"})


def test_delete_game_nulls_guide_reference(tmp_db):
    """Test deleting a game keeps its guides with no game link."""
    game = tmp_db.create_game(title="Zelda")
    guide = _create_guide(tmp_db, game_id=game.id)

    assert tmp_db.delete_game(game.id)

    fetched = tmp_db.get_guide(guide.id)
    assert fetched is not None
    assert fetched.game_id is None


def test_guides_for_game(tmp_db):
    """Test listing the guides linked to a game."""
    game = tmp_db.create_game(title="Zelda")
    _create_guide(tmp_db, title="B guide", game_id=game.id)
    _create_guide(tmp_db, title="A guide", game_id=game.id)
    _create_guide(tmp_db, title="Unrelated")

    assert [g.title for g in tmp_db.guides_for_game(game.id)] == ["A guide", "B guide"]


def test_guide_foreign_key_enforced(tmp_db):
    """Test a guide cannot reference a game that does not exist."""
    with pytest.raises(IntegrityError):
        _create_guide(tmp_db, game_id="no-such-game")


def test_delete_guide_cascades_children(tmp_db):
    """Test bookmarks and notes are deleted with their guide."""
    guide = _create_guide(tmp_db)
    tmp_db.add_bookmark(guide.id, position=10, name="Boss")
    tmp_db.add_note(guide.id, content="Remember the key", position=12)

    assert len(tmp_db.list_bookmarks(guide.id)) == 1
    assert len(tmp_db.list_notes(guide.id)) == 1

    assert tmp_db.delete_guide(guide.id)
    assert tmp_db.get_guide(guide.id) is None

    with tmp_db.engine.connect() as conn:
        assert conn.execute(text("SELECT COUNT(*) FROM bookmarks")).scalar() == 0
        assert conn.execute(text("SELECT COUNT(*) FROM notes")).scalar() == 0


def test_delete_missing_guide(tmp_db):
    """Test deleting an unknown guide reports False."""
    assert tmp_db.delete_guide("missing") is False


def test_aggregate_stats(tmp_db):
    """Test aggregate counts across guides and games."""
    game = tmp_db.create_game(title="Zelda")
    _create_guide(tmp_db, title="Linked", game_id=game.id)
    _create_guide(tmp_db, title="Loose 1")
    _create_guide(tmp_db, title="Loose 2")

    stats = tmp_db.get_aggregate_stats()
    assert stats == {
        "total_guides": 3,
        "total_games": 1,
        "guides_with_games": 1,
        "guides_without_games": 2,
    }
