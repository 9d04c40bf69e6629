class DropshotError(Exception):
    pass


class GeolocationError(DropshotError):
    pass


class DatabaseLookupError(DropshotError):
    pass


class EntryNotFoundError(DropshotError):
    def __init__(self, name: str):
        super().__init__(f"entry not found: {name!r}")
        self.name = name
