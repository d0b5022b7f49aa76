from .enums import ChangeKind, DefaultsMode

__all__ = [
    "ChangeKind",
    "DefaultsMode",
]
