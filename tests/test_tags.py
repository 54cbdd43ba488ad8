from datetime import datetime

import pytest
from sqlalchemy import create_engine, func, select
from sqlalchemy.orm import Session

from database import Base
from models import event_tags
from schemas import EventIn, NoteIn, TagIn, TagUpdate, TodoIn
from services import (
    ConflictError,
    EventService,
    NoteService,
    NotFoundError,
    TagService,
    TodoService,
)


def test_tag_names_are_trimmed_and_unique_per_user():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        tag = TagService(session, 1).create(TagIn(name="  Work "))
        assert tag.name == "Work"
        assert tag.color == "#3b82f6"

        with pytest.raises(ConflictError):
            TagService(session, 1).create(TagIn(name="Work"))

        # same name is fine for someone else
        TagService(session, 2).create(TagIn(name="Work"))


def test_renaming_to_existing_name_conflicts():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TagService(session, 1)
        service.create(TagIn(name="Home"))
        gym = service.create(TagIn(name="Gym", color="#f00"))

        with pytest.raises(ConflictError):
            service.update(gym.id, TagUpdate(name="Home"))
        assert service.update(gym.id, TagUpdate(name="Gym")).name == "Gym"


def test_deleting_used_tag_clears_associations():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        tag = TagService(session, 1).create(TagIn(name="Family"))
        event = EventService(session, 1).create(
            EventIn(
                title="Dinner",
                start_time=datetime(2024, 5, 1, 20, 0),
                end_time=datetime(2024, 5, 1, 22, 0),
                tag_ids=[tag.id],
            )
        )[0]
        note = NoteService(session, 1).create(
            NoteIn(title="Gifts", content="ideas", tag_ids=[tag.id])
        )
        todo = TodoService(session, 1).create(TodoIn(title="Call", tag_ids=[tag.id]))

        counts = TagService(session, 1).usage_counts()
        assert counts[tag.id] == {"event_count": 1, "note_count": 1, "todo_count": 1}

        TagService(session, 1).delete(tag.id)

        assert EventService(session, 1).get(event.id).tags == []
        assert NoteService(session, 1).get(note.id).tags == []
        assert TodoService(session, 1).get(todo.id).tags == []
        links = session.scalar(select(func.count()).select_from(event_tags))
        assert links == 0


def test_foreign_tag_ids_are_rejected():
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        tag = TagService(session, 2).create(TagIn(name="Private"))

        with pytest.raises(NotFoundError):
            NoteService(session, 1).create(
                NoteIn(title="Mine", content="text", tag_ids=[tag.id])
            )
        with pytest.raises(NotFoundError):
            TagService(session, 1).get(tag.id)
        assert NoteService(session, 1).list() == []


def test_duplicate_that_slips_past_the_check_is_a_conflict(monkeypatch):
    engine = create_engine("sqlite:///:memory:")
    Base.metadata.create_all(engine)

    with Session(engine) as session:
        service = TagService(session, 1)
        service.create(TagIn(name="Work"))
        other = service.create(TagIn(name="Play"))
        # as if another request inserted the same name in between
        monkeypatch.setattr(TagService, "_ensure_unique", lambda *args, **kwargs: None)

        with pytest.raises(ConflictError):
            service.create(TagIn(name="Work"))
        with pytest.raises(ConflictError):
            service.update(other.id, TagUpdate(name="Work"))

        assert [t.name for t in service.list_all()] == ["Play", "Work"]
