from app.properties.models.property import Property

__all__ = ["Property"]
