from ..ports import ObjectStorePort
from .conversation_store import InMemoryConversationStore, TurnGate
from .object_store import FilesystemObjectStore, InMemoryObjectStore, get_object_store

__all__ = [
    "FilesystemObjectStore",
    "InMemoryConversationStore",
    "InMemoryObjectStore",
    "ObjectStorePort",
    "TurnGate",
    "get_object_store",
]
