"""mixerpack: packaging and distribution of MIDI Mixer plugins."""

from mixerpack.__version__ import __version__

__all__ = ["__version__"]
