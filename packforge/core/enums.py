from enum import Enum


class PackKind(str, Enum):
    BEHAVIOR = "behavior"
    RESOURCE = "resource"


class FileChangeKind(str, Enum):
    ADD = "add"
    UPDATE = "update"
    REMOVE = "remove"


class BuildState(Enum):
    """Lifecycle state of a BuildSystem"""
    IDLE = "idle"
    BUILDING = "building"
    WATCHING = "watching"
    REBUILDING = "rebuilding"
    CLOSED = "closed"


class WatchEventKind(str, Enum):
    ADD = "add"
    CHANGE = "change"
    UNLINK = "unlink"
