class DatabaseConnectionError(Exception):
    """Raised when the stats database is used while it is not connected."""

    def __init__(self, message: str = "Stats database is not connected") -> None:
        super().__init__(message)


class CorruptedDatabaseError(Exception):
    """A uniqueness invariant was violated by the rows in the store."""

    def __init__(self, table: str, key: str, count: int) -> None:
        self.table = table
        self.key = key
        self.count = count
        super().__init__(f"Expected at most one row in {table} for {key}, found {count}")


class NotFoundError(Exception):
    pass


class UserNotFoundError(NotFoundError):
    def __init__(self, identifier: str | int) -> None:
        self.identifier = identifier
        super().__init__(f"User not found: {identifier}")


class AmbiguousNicknameError(ValueError):
    def __init__(self, nickname: str, user_ids: list[int]) -> None:
        self.nickname = nickname
        self.user_ids = user_ids
        super().__init__(
            f"Multiple users found for nickname {nickname!r}: "
            f"{', '.join(str(uid) for uid in user_ids)}"
        )


class MiscDataNotFoundError(NotFoundError):
    def __init__(self, data_type: str, key: str) -> None:
        self.data_type = data_type
        self.key = key
        super().__init__(f"Value for type {data_type!r}, key {key!r} not found")


class VarNotFoundError(NotFoundError):
    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Variable not found: {key}")
