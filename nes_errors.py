"""
nes_errors.py - Exceptions raised while loading catalogs and building the index.

Everything derives from NesIndexError so the CLI can catch broadly and
the builder can catch MissingFileError on its own.
"""


class NesIndexError(Exception):
    """Base class for all NES index exceptions."""


class ConfigError(NesIndexError):
    """Raised when config.txt is missing or does not define a required key."""


class CatalogError(NesIndexError):
    """Raised when a catalog file is missing or holds a malformed field."""


class MissingFileError(NesIndexError):
    """
    Raised when a game's headerless ROM file is not in the ROM directory.

    Attributes
    ----------
    game     : The Game that was being hashed.
    filename : Expected headerless filename (e.g. "Tetris (USA).unh").
    filepath : Full path that was tried.
    """

    def __init__(self, game, filename, filepath):
        self.game = game
        self.filename = filename
        self.filepath = filepath
        super().__init__(f"{game.rom_crc32} {filename} - file not found: {filepath}")


class ShortReadError(NesIndexError):
    """
    Raised when a ROM file holds fewer bytes than the range being hashed.

    IndexBuilder fills in game before re-raising.
    """

    def __init__(self, filepath, bytes_read, byte_length, game=None):
        self.game = game
        self.filepath = filepath
        self.bytes_read = bytes_read
        self.byte_length = byte_length
        super().__init__(
            f"Read incorrect byte length from {filepath}: "
            f"{bytes_read} instead of {byte_length}"
        )
