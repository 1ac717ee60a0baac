from sqlalchemy.orm import Session

from app.core.repository import BaseRepository
from app.properties.models.property import Property


class PropertyRepository(BaseRepository[Property]):
    """Read-only property lookup used to validate conversation creation."""

    def __init__(self, db: Session):
        super().__init__(db, Property)
