"""
nes_index.py - Discriminating CRC32 index over headerless NES ROMs.

The index is a tree. Every branch hashes the first prg_rom_byte_length bytes
of PRG-ROM followed by the first chr_rom_byte_length bytes of CHR-ROM and maps
the resulting CRC32 to either a leaf (the game(s) that produced it) or a
deeper branch that reads more bytes. Identifying a file means walking the
tree, reading only as much of the file as each branch asks for.
"""

import os
import json
import zlib
from dataclasses import dataclass, field

from nes_errors import MissingFileError, ShortReadError

# Covers the largest iNES header variant (512 byte trainer).
HEADER_PROBE_BYTES = 512

HEADERLESS_EXT = ".unh"

# ============================================================
# ========================== MODEL ===========================
# ============================================================

@dataclass(frozen=True)
class Game:
    """
    One catalog ROM.

    Attributes
    ----------
    rom_crc32       : CRC32 of the whole headerless file, uppercase hex.
    name            : No-Intro game name.
    filename        : No-Intro ROM filename (with its original extension).
    prg_rom_size    : PRG-ROM size in bytes.
    chr_rom_size    : CHR-ROM size in bytes, 0 for CHR-RAM boards.
    nes2_header_data: NES 2.0 DB metadata, passed through to the index as is.
    """

    rom_crc32: str
    name: str
    filename: str
    prg_rom_size: int
    chr_rom_size: int = 0
    nes2_header_data: dict = field(default_factory=dict, compare=False, hash=False)

    def __str__(self):
        return f"{self.rom_crc32} {self.name} - PRG:{self.prg_rom_size} CHR:{self.chr_rom_size}"


@dataclass
class IndexLeaf:
    prg_rom_byte_length: int
    chr_rom_byte_length: int
    games: list = field(default_factory=list)

    @property
    def ambiguous(self):
        return len(self.games) > 1


@dataclass
class IndexBranch:
    """
    A node that hashes a fixed byte range.

    children maps a CRC32 key to an IndexLeaf or an IndexBranch, so a key can
    never point at both kinds of node.
    """

    prg_rom_byte_length: int
    chr_rom_byte_length: int
    children: dict = field(default_factory=dict)

    @property
    def byte_length(self):
        return self.prg_rom_byte_length + self.chr_rom_byte_length

    @property
    def leaf_dict(self):
        return {k: v for k, v in self.children.items() if isinstance(v, IndexLeaf)}

    @property
    def branch_dict(self):
        return {k: v for k, v in self.children.items() if isinstance(v, IndexBranch)}


@dataclass
class Ambiguity:
    crc32_partial_hash: str
    prg_rom_byte_length: int
    chr_rom_byte_length: int
    games: list


@dataclass
class BuildReport:
    games: list
    missing: list = field(default_factory=list)
    short_reads: list = field(default_factory=list)
    ambiguities: list = field(default_factory=list)

    @property
    def num_missing(self):
        return len(self.missing)

    @property
    def num_short_reads(self):
        return len(self.short_reads)

    @property
    def num_ambiguous(self):
        return sum(len(a.games) for a in self.ambiguities)

    @property
    def num_indexed(self):
        return len(self.games) - self.num_missing - self.num_short_reads - self.num_ambiguous

# ============================================================
# ========================= HASHING ==========================
# ============================================================

def format_crc32(crc):
    return f"{crc & 0xffffffff:08X}"


def headerless_filename(game):
    # "Tetris (USA).nes" -> "Tetris (USA).unh"
    return game.filename[:-4] + HEADERLESS_EXT


def partial_crc32(path, byte_length):
    """CRC32 of exactly the first byte_length bytes of path."""
    with open(path, "rb") as f:
        data = f.read(byte_length)
    if len(data) != byte_length:
        raise ShortReadError(path, len(data), byte_length)
    return format_crc32(zlib.crc32(data))

# ============================================================
# ========================= BUILDER ==========================
# ============================================================

def sort_games(games):
    # Smallest PRG first keeps most branch ranges within the files routed
    # through them. A CHR-only split can still outgrow a later game with
    # more PRG and no CHR, build_index records those as short reads.
    return sorted(games, key=lambda g: (g.prg_rom_size, g.chr_rom_size))


class IndexBuilder:
    """
    Grows an index tree one game at a time.

    Games must be added in sort_games() order.
    """

    def __init__(self, rom_dir, header_probe=HEADER_PROBE_BYTES, on_insert=None):
        self.rom_dir = rom_dir
        self.root = IndexBranch(header_probe, 0)
        self.on_insert = on_insert

    def hash_game(self, game, byte_length):
        filename = headerless_filename(game)
        filepath = os.path.join(self.rom_dir, filename)
        try:
            return partial_crc32(filepath, byte_length)
        except FileNotFoundError:
            raise MissingFileError(game, filename, filepath) from None
        except ShortReadError as err:
            err.game = game
            raise

    def add_game(self, game):
        if self.on_insert:
            self.on_insert(game)
        self._add_to_branch(self.root, game)

    def _add_to_branch(self, branch, game):
        key = self.hash_game(game, branch.byte_length)
        child = branch.children.get(key)

        if child is None:
            branch.children[key] = IndexLeaf(
                branch.prg_rom_byte_length, branch.chr_rom_byte_length, [game]
            )
            return

        if isinstance(child, IndexBranch):
            self._add_to_branch(child, game)
            return

        # Hash collision with an existing leaf.
        leaf = child
        if leaf.ambiguous:
            leaf.games.append(game)
            return

        other = leaf.games[0]

        # Largest range both files can be read to.
        new_prg = min(game.prg_rom_size, other.prg_rom_size)
        if new_prg > branch.prg_rom_byte_length:
            new_chr = 0
        else:
            # PRG-ROM exhausted for one of them, continue into CHR-ROM.
            new_chr = min(game.chr_rom_size, other.chr_rom_size)

        if (new_prg, new_chr) == (branch.prg_rom_byte_length, branch.chr_rom_byte_length):
            # Nothing left to read. The files are identical over their whole
            # shared range, e.g. one is a prefix of the other.
            leaf.games.append(game)
            return

        new_branch = IndexBranch(new_prg, new_chr)
        branch.children[key] = new_branch
        self._add_to_branch(new_branch, other)
        self._add_to_branch(new_branch, game)


def build_index(games, rom_dir, header_probe=HEADER_PROBE_BYTES, on_insert=None):
    """
    Build the index tree for games.

    Returns (root, report). Games whose headerless file is missing are left
    out of the tree and listed in report.missing. Games too short for a
    branch range they reach (a smaller-PRG game with more CHR can push a
    range past a later game with no CHR) are left out and listed in
    report.short_reads. Other I/O errors propagate.
    """
    games = sort_games(games)
    builder = IndexBuilder(rom_dir, header_probe, on_insert)
    report = BuildReport(games)

    for game in games:
        try:
            builder.add_game(game)
        except MissingFileError as err:
            report.missing.append(err)
        except ShortReadError as err:
            report.short_reads.append(err)

    report.ambiguities = find_ambiguities(builder.root)
    return builder.root, report

# ============================================================
# ======================== AMBIGUITY =========================
# ============================================================

def iterate_branches(branch):
    yield branch
    for child in branch.branch_dict.values():
        yield from iterate_branches(child)


def find_ambiguities(root):
    ambiguities = []
    for branch in iterate_branches(root):
        for key, leaf in branch.leaf_dict.items():
            if leaf.ambiguous:
                ambiguities.append(Ambiguity(
                    key,
                    branch.prg_rom_byte_length,
                    branch.chr_rom_byte_length,
                    list(leaf.games),
                ))
    return ambiguities

# ============================================================
# ======================== SERIALIZE =========================
# ============================================================

def serialize_game(game):
    return {
        "romCRC32": game.rom_crc32,
        "name": game.name,
        "filename": game.filename,
        "nes2HeaderData": game.nes2_header_data,
    }


def serialize_branch(branch):
    sbranch = {
        "prgROMByteLength": branch.prg_rom_byte_length,
        "chrROMByteLength": branch.chr_rom_byte_length,
        "leafDict": {},
        "branchDict": {},
    }

    for key, child in branch.children.items():
        if isinstance(child, IndexBranch):
            sbranch["branchDict"][key] = serialize_branch(child)
        elif not child.ambiguous:
            # Ambiguous games can't be identified, leave them out.
            sbranch["leafDict"][key] = serialize_game(child.games[0])

    return sbranch


def write_index(root, path):
    out_dir = os.path.dirname(path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(serialize_branch(root), f, separators=(",", ":"))


def load_index(path):
    with open(path, "r", encoding="utf-8") as f:
        return json.load(f)

# ============================================================
# ======================== IDENTIFY ==========================
# ============================================================

def identify_rom(index, read_prefix):
    """
    Walk a serialized index.

    read_prefix(n) must return the first n bytes of the unknown file (or
    fewer if the file is shorter). Returns the leaf entry dict, or None for
    an unknown file.
    """
    branch = index
    while True:
        byte_length = branch["prgROMByteLength"] + branch["chrROMByteLength"]
        data = read_prefix(byte_length)
        if len(data) != byte_length:
            return None

        key = format_crc32(zlib.crc32(data))
        if key in branch["leafDict"]:
            return branch["leafDict"][key]
        if key not in branch["branchDict"]:
            return None
        branch = branch["branchDict"][key]


def identify_file(index, path):
    with open(path, "rb") as f:
        def read_prefix(n):
            f.seek(0)
            return f.read(n)

        return identify_rom(index, read_prefix)
