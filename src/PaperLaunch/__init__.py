"""Paper Minecraft server launcher."""

__version__ = "0.1.0"
