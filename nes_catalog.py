"""
nes_catalog.py - Load the NES 2.0 database and the No-Intro headerless DAT.

The two XML sources are joined on the CRC32 of the headerless ROM. The
No-Intro DAT gives the name and filename, the NES 2.0 DB gives PRG/CHR sizes
and the board metadata that ends up in the index.
"""

import os
import re
import xml.etree.ElementTree as ET
from dataclasses import dataclass, field

from colorama import Fore, Style

from nes_errors import CatalogError
from nes_index import Game

# ============================================================
# ====================== STRICT PARSING ======================
# ============================================================

INT_RE = re.compile(r"^\d+$")

def parse_int_strict(s):
    if s is None or not INT_RE.match(s):
        raise CatalogError(f"Invalid integer: {s}")
    return int(s, 10)

def parse_bool_strict(s):
    if s == "0":
        return False
    if s == "1":
        return True
    raise CatalogError(f"Invalid boolean: {s}")

# ============================================================
# ========================= XML ==============================
# ============================================================

def parse_xml(path, keep_comments=False):
    if not os.path.exists(path):
        raise CatalogError(f"Missing catalog file {path}")

    parser = None
    if keep_comments:
        parser = ET.XMLParser(target=ET.TreeBuilder(insert_comments=True))

    try:
        return ET.parse(path, parser=parser).getroot()
    except ET.ParseError as exc:
        raise CatalogError(f"Cannot parse {path}: {exc}") from exc


def element_to_dict(elem):
    """
    Flatten a <game> element: each child element becomes {tag: attributes}.
    The first comment, if any, is stored under "_comment".
    """
    data = {}
    for child in elem:
        if child.tag is ET.Comment:
            data.setdefault("_comment", (child.text or "").strip())
            continue
        data[child.tag] = dict(child.attrib)
    return data


def load_nes20db(path):
    """Return every NES 2.0 DB entry with a ROM CRC32, in file order."""
    root = parse_xml(path, keep_comments=True)

    games = []
    for elem in root.iter("game"):
        game = element_to_dict(elem)
        if not game.get("rom", {}).get("crc32"):
            continue
        games.append(game)
    return games


def nes20db_crc32(game):
    return game["rom"]["crc32"].upper()


def map_by_crc32(nes2db):
    # Later rows win when the DB lists the same ROM twice.
    return {nes20db_crc32(game): game for game in nes2db}


def load_nointro(path):
    """Return every No-Intro DAT game as {"name": ..., "rom": {attributes}}."""
    root = parse_xml(path)

    games = []
    for elem in root.iter("game"):
        rom = elem.find("rom")
        games.append({
            "name": elem.get("name", ""),
            "rom": dict(rom.attrib) if rom is not None else {},
        })
    return games

# ============================================================
# ========================= FILTERS ==========================
# ============================================================

@dataclass
class CatalogFilters:
    """
    Ignore rules.

    nes2db_name_patterns  : regexes matched against the NES 2.0 DB comment
                            (its "Category\\Name" path).
    nointro_name_patterns : regexes matched against the No-Intro name.
    rom_crc32s            : ROM CRC32s to drop outright.
    ignore_nameless       : drop entries that have no No-Intro name.
    """

    nes2db_name_patterns: list = field(default_factory=list)
    nointro_name_patterns: list = field(default_factory=list)
    rom_crc32s: list = field(default_factory=list)
    ignore_nameless: bool = False

    def __post_init__(self):
        self.nes2db_name_patterns = [re.compile(p) for p in self.nes2db_name_patterns]
        self.nointro_name_patterns = [re.compile(p) for p in self.nointro_name_patterns]
        self.rom_crc32s = {c.upper() for c in self.rom_crc32s}


def should_ignore_game(nes2_name, nointro_name, rom_crc32, filters):
    for regexp in filters.nes2db_name_patterns:
        if regexp.search(nes2_name):
            return True

    if nointro_name:
        for regexp in filters.nointro_name_patterns:
            if regexp.search(nointro_name):
                return True
    elif filters.ignore_nameless:
        return True

    return rom_crc32 in filters.rom_crc32s

# ============================================================
# ====================== GAME RECORDS ========================
# ============================================================

def _sized(node):
    return {"size": parse_int_strict(node.get("size"))}

def _sized_crc(node):
    return {"size": parse_int_strict(node.get("size")), "crc32": node.get("crc32")}


def build_header_data(nes2_game, prg_size, chr_size):
    pcb = nes2_game.get("pcb")
    if pcb is None:
        raise CatalogError(f"{nes2_game['rom'].get('crc32')} - Missing pcb element.")

    data = {
        "rom": _sized_crc(nes2_game["rom"]),
        "pcb": {
            "mapper": parse_int_strict(pcb.get("mapper")),
            "submapper": parse_int_strict(pcb.get("submapper", "0")),
            "mirroring": pcb.get("mirroring"),
            "battery": parse_bool_strict(pcb.get("battery", "0")),
        },
        "prgrom": {"size": prg_size, "crc32": nes2_game["prgrom"].get("crc32")},
    }

    if "chrrom" in nes2_game:
        data["chrrom"] = {"size": chr_size, "crc32": nes2_game["chrrom"].get("crc32")}
    if "miscrom" in nes2_game:
        miscrom = nes2_game["miscrom"]
        data["miscrom"] = dict(_sized_crc(miscrom), number=parse_int_strict(miscrom.get("number")))
    if "trainer" in nes2_game:
        data["trainer"] = _sized_crc(nes2_game["trainer"])
    for key in ("prgram", "prgnvram", "chrram", "chrnvram"):
        if key in nes2_game:
            data[key] = _sized(nes2_game[key])
    if "console" in nes2_game:
        data["console"] = {
            "type": nes2_game["console"].get("type"),
            "region": nes2_game["console"].get("region"),
        }
    if "expansion" in nes2_game:
        data["expansion"] = {"type": nes2_game["expansion"].get("type")}
    if "vs" in nes2_game:
        data["vs"] = {
            "hardware": nes2_game["vs"].get("hardware"),
            "ppu": nes2_game["vs"].get("ppu"),
        }
    return data


@dataclass
class CatalogStats:
    total: int = 0
    included: int = 0
    missing_crc32: int = 0
    missing_nes2_data: int = 0
    ignored: int = 0
    missing_prg_size: int = 0

    @property
    def other(self):
        return self.total - self.included - self.missing_nes2_data - self.ignored


def warn(crc32, name, msg):
    print(f"{crc32} {name} {Fore.LIGHTBLACK_EX}- {msg}{Style.RESET_ALL}")


def load_games(nes2db, nointro, filters=None):
    """
    Join No-Intro entries with NES 2.0 DB rows (as returned by load_nes20db).

    Returns (games, stats). Malformed numeric or boolean fields raise
    CatalogError.
    """
    filters = filters or CatalogFilters()
    nes2db_map = map_by_crc32(nes2db)
    stats = CatalogStats(total=len(nointro))
    games = []

    for nointro_game in nointro:
        rom = nointro_game["rom"]
        rom_crc32 = (rom.get("crc") or "").upper()
        if not rom_crc32:
            warn("00000000", nointro_game["name"], "CRC32 missing.")
            stats.missing_crc32 += 1
            continue

        nes2_game = nes2db_map.get(rom_crc32)
        if nes2_game is None:
            stats.missing_nes2_data += 1
            continue

        if should_ignore_game(
            nes2_game.get("_comment", ""),
            nointro_game["name"],
            rom_crc32,
            filters,
        ):
            stats.ignored += 1
            continue

        prg_size = parse_int_strict(nes2_game["prgrom"].get("size")) if "prgrom" in nes2_game else 0
        if not prg_size:
            warn(rom_crc32, nointro_game["name"], "Missing PRG ROM size.")
            stats.missing_prg_size += 1
            continue

        chr_size = parse_int_strict(nes2_game["chrrom"].get("size")) if "chrrom" in nes2_game else 0

        games.append(Game(
            rom_crc32=rom_crc32,
            name=nointro_game["name"],
            filename=rom.get("name", ""),
            prg_rom_size=prg_size,
            chr_rom_size=chr_size,
            nes2_header_data=build_header_data(nes2_game, prg_size, chr_size),
        ))

    stats.included = len(games)
    return games, stats
