from __future__ import annotations


class CollabError(Exception):
    """An error scoped to one connection or one inbound event.

    The coordinator reports it to the sender only and never lets it escape
    the connection loop.
    """

    code = "ERROR"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def to_event(self) -> dict[str, str]:
        return {"type": "error", "code": self.code, "message": self.message}


class MalformedEventError(CollabError):
    code = "INVALID_MESSAGE_FORMAT"

    def __init__(self, message: str = "Invalid message format") -> None:
        super().__init__(message)


class JoinValidationError(CollabError):
    code = "INVALID_JOIN"


class AlreadyJoinedError(CollabError):
    code = "ALREADY_JOINED"

    def __init__(self, message: str = "Already in a room") -> None:
        super().__init__(message)


class NotInRoomError(CollabError):
    code = "NOT_IN_ROOM"

    def __init__(self, message: str = "Not in a room") -> None:
        super().__init__(message)


class MessageNotFoundError(CollabError):
    code = "MESSAGE_NOT_FOUND"

    def __init__(self, message: str = "Message not found") -> None:
        super().__init__(message)


class NoActiveGameError(CollabError):
    code = "NO_ACTIVE_GAME"

    def __init__(self, message: str = "No active game") -> None:
        super().__init__(message)


class UnknownGameTypeError(CollabError):
    code = "UNKNOWN_GAME_TYPE"

    def __init__(self, message: str = "Unknown game type") -> None:
        super().__init__(message)
