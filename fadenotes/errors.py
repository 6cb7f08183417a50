class NoteError(Exception):
    """Base class for note manager errors."""


class ValidationError(NoteError):
    """Title or content was empty after trimming."""


class NotFound(NoteError):
    def __init__(self, note_id: int):
        super().__init__(f"Note {note_id} not found")
        self.note_id = note_id


class PersistenceError(NoteError):
    """The snapshot could not be read or written."""


class NotificationUnavailable(NoteError):
    pass


class PermissionDenied(NotificationUnavailable):
    pass


class Unsupported(NotificationUnavailable):
    pass
