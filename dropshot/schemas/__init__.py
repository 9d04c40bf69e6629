from dropshot.schemas.entry import EntryCreate, EntryResponse

__all__ = [
    "EntryCreate",
    "EntryResponse",
]
