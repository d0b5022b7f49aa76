from enum import Enum


class ChangeKind(str, Enum):
    CREATED = "CREATED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


class DefaultsMode(str, Enum):
    LOOSE = "loose"
    ARCHIVE = "archive"
