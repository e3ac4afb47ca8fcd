"""Shared FastAPI dependencies."""
from fastapi import Depends
from sqlalchemy.orm import Session

from sealtrack.collaborators import Collaborators, default_collaborators
from sealtrack.db import get_db


def get_collaborators(db: Session = Depends(get_db)) -> Collaborators:
    return default_collaborators(db)
