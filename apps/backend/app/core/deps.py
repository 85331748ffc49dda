from __future__ import annotations

import logging
from datetime import datetime

from fastapi import Depends, Header, HTTPException
from sqlalchemy.orm import Session

from app.core.database import get_db
from app import models

logger = logging.getLogger(__name__)


def sync_user(db: Session, external_id: str, email: str | None) -> models.User:
    """Return the user for an identity-provider id, creating it on first sign-in.

    A row with the same email and no external id yet (e.g. the seeded demo
    user) is linked instead of duplicated.
    """
    user = db.query(models.User).filter(models.User.external_id == external_id).first()
    if user:
        return user
    if not email:
        raise HTTPException(status_code=401, detail="Unknown user")

    email = email.strip().lower()
    user = db.query(models.User).filter(models.User.email == email).first()
    if user:
        if user.external_id and user.external_id != external_id:
            raise HTTPException(status_code=409, detail="Email already linked to another user")
        user.external_id = external_id
    else:
        user = models.User(external_id=external_id, email=email)
        db.add(user)
    db.commit()
    db.refresh(user)
    logger.info("Synced user %s for external id %s", user.id, external_id)
    return user


def get_current_user(
    x_user_id: str | None = Header(None, alias="X-User-Id"),
    x_user_email: str | None = Header(None, alias="X-User-Email"),
    db: Session = Depends(get_db),
) -> models.User:
    """Very lightweight current user resolver.

    Sign-in is handled by the hosted identity provider; the gateway forwards
    its user id in ``X-User-Id`` and the primary address in ``X-User-Email``.
    An id seen for the first time is synced into a new user when the email is
    present. Without the header the first user is used (a demo user is
    created if none exists). Tests may override this dependency to simulate
    different users.
    """
    if x_user_id:
        return sync_user(db, x_user_id, x_user_email)
    user = db.query(models.User).order_by(models.User.id).first()
    if not user:
        user = models.User(email="demo@example.com", display_name="Demo")
        db.add(user)
        db.commit()
        db.refresh(user)
    return user


def get_now() -> datetime:
    """Reference instant for calendar classification; overridden in tests."""
    return models.now_local_naive()
