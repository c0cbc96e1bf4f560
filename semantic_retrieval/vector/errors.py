"""
Retrieval engine error taxonomy.
Dependency, persistence, capacity and chunking failures are distinct so callers
can decide which ones to degrade and which ones to surface.
"""


class RetrievalError(Exception):
    """Base class for all retrieval engine errors."""
    pass


class EmbeddingError(RetrievalError):
    """The embedding provider failed or returned unusable vectors."""
    pass


class IndexPersistenceError(RetrievalError):
    """The persisted index image could not be written or read."""
    pass


class IndexCapacityError(RetrievalError):
    """An insert would grow the index past its declared capacity."""

    def __init__(self, requested: int, current: int, capacity: int):
        self.requested = requested
        self.current = current
        self.capacity = capacity
        super().__init__(
            f"Cannot add {requested} documents: index holds {current} of {capacity} allowed entries"
        )


class ChunkingError(RetrievalError):
    """A document could not be split into chunks."""
    pass
