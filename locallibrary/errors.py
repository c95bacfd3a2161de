from typing import NamedTuple


class NotFound(Exception):
    """Requested entity does not exist."""


class DataAccessError(Exception):
    """The underlying store failed. Not recoverable at the request level."""


class FieldError(NamedTuple):
    field: str
    message: str

    def to_dict(self) -> dict:
        return {"field": self.field, "message": self.message}
