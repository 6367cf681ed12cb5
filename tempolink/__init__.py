"""tempolink - shared transport clock synchronization over a replicated document."""

__version__ = "0.1.0"
