"""Tests for database-level constraints on the models."""

from datetime import timedelta

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from ephemera.models import Device, Post, Reaction, Space
from ephemera.scripts.migrate import PROJECT_ROOT, build_config


def _post(db_session: Session, space: Space, device: Device, clock) -> Post:
    post = Post(
        space_id=space.id,
        device_id=device.id,
        content="constraint check",
        created_at=clock.now,
        expires_at=clock.now + timedelta(hours=1),
    )
    db_session.add(post)
    db_session.commit()
    return post


def test_one_reaction_per_device_per_post(db_session: Session, space, device, clock) -> None:
    post = _post(db_session, space, device, clock)
    db_session.add(Reaction(post_id=post.id, device_id=device.id, reaction_type="agree"))
    db_session.commit()

    db_session.add(Reaction(post_id=post.id, device_id=device.id, reaction_type="exaggerated"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_reaction_type_is_checked(db_session: Session, space, device, clock) -> None:
    post = _post(db_session, space, device, clock)
    db_session.add(Reaction(post_id=post.id, device_id=device.id, reaction_type="love"))
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_reputation_range_is_checked(db_session: Session, device) -> None:
    device.reputation_score = 101
    with pytest.raises(IntegrityError):
        db_session.commit()
    db_session.rollback()


def test_deleting_space_removes_posts(db_session: Session, space, device, clock) -> None:
    _post(db_session, space, device, clock)
    db_session.delete(space)
    db_session.commit()
    assert db_session.scalar(select(func.count()).select_from(Post)) == 0


def test_migration_config_points_at_project() -> None:
    cfg = build_config()
    assert cfg.get_main_option("script_location") == str(PROJECT_ROOT / "migrations")
    assert cfg.get_main_option("sqlalchemy.url")
