from abc import ABC, abstractmethod

from app.models import FormatDescriptor, MediaSource, ResolvedVideo


class FormatResolver(ABC):
    """Turns a source URL into metadata, format descriptors and fetchable sources.

    Implementations may block; the pipeline calls them through ``asyncio.to_thread``.
    """

    name: str = "base"

    @abstractmethod
    def resolve(self, url: str, platform: str = "youtube") -> ResolvedVideo:
        ...

    @abstractmethod
    def locate(self, resolved: ResolvedVideo, fmt: FormatDescriptor, note: str = "") -> MediaSource:
        """Return a live fetchable handle for ``fmt`` from a fresh resolution."""
        ...

    def close(self) -> None:
        pass
