"""adcast: TV pairing and unattended carousel playback."""

__version__ = "0.1.0"
