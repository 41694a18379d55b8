from .templates import BlobStorage, InMemoryBlobStorage, LocalBlobStorage, TemplateStore

__all__ = ["BlobStorage", "InMemoryBlobStorage", "LocalBlobStorage", "TemplateStore"]
