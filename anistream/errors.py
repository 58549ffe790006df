class AnistreamError(Exception):
    """Base class for resolver errors."""


class EpisodeNotFound(AnistreamError):
    """Neither the local catalog nor the metadata provider knows the episode."""


class ProviderSoftFailure(AnistreamError):
    """One provider call failed; the caller moves on to the next candidate."""


class BlockedSource(AnistreamError):
    """A resolved URL failed the domain filter at the playback edge."""

    def __init__(self, url, message=None):
        super().__init__(message or "Video source blocks embedding")
        self.url = url


class ResolutionCancelled(AnistreamError):
    """The consumer went away; results must be discarded silently."""
