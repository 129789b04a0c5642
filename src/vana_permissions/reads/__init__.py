from .batch_reader import BatchReader, CollectionKind

__all__ = ["BatchReader", "CollectionKind"]
