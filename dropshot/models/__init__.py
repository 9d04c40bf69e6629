from dropshot.models.entry import Entry

__all__ = ["Entry"]
