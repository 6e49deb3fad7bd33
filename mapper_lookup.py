"""
mapper_lookup.py - Static HTML page for looking up a ROM's cartridge mapper.

Every NES 2.0 DB entry becomes one row (CRC32, No-Intro name, mapper type,
PRG/CHR size in KB, mirroring, battery). The rows are embedded as JSON in an
HTML template that does the searching client side.
"""

import os
import json

from nes_catalog import nes20db_crc32, parse_int_strict, parse_bool_strict, should_ignore_game
from nes_errors import ConfigError

LOOKUP_PLACEHOLDER = "__LOOKUP_ENTRIES__"
GENERATED_BANNER = "<!-- DO NOT EDIT - AUTO GENERATED -->\n"

# Cartridge mapper type -> iNES mapper numbers it covers.
MAPPER_TYPES = {
    "NROM": [0],
    "CNROM": [3, 185],
    "UxROM": [2, 94, 180],
    "AxROM": [7],
    "MMC1": [1, 105, 155],
    "MMC2": [9],
    "MMC3": [4, 118, 119],
    "MMC4": [10],
    "MMC5": [5],
    "ColorDreams/Wisdom Tree": [11],
    "Camerica": [71],
    "BNROM": [34],
    "GNROM/MHROM": [66],
    "Mapper 206": [206, 76, 88, 154, 95],
}

INES_MAPPER_TYPE = {
    str(mapper): mapper_type
    for mapper_type, mappers in MAPPER_TYPES.items()
    for mapper in mappers
}


def size_kb(node):
    size = parse_int_strict(node.get("size"))
    # Whole KB stay integers.
    return size // 1024 if size % 1024 == 0 else size / 1024


def build_lookup_entries(nes2db, nointro, filters):
    nointro_names = {}
    for game in nointro:
        crc = game["rom"].get("crc")
        if crc:
            nointro_names[crc.upper()] = game["name"]

    entries = []
    for game in nes2db:
        rom_crc32 = nes20db_crc32(game)
        name = nointro_names.get(rom_crc32)

        if should_ignore_game(game.get("_comment", ""), name, rom_crc32, filters):
            continue

        pcb = game.get("pcb", {})
        entry = {
            "romCRC32": rom_crc32,
            "name": name,
            "mapperType": INES_MAPPER_TYPE.get(pcb.get("mapper")),
            "prgROMSizeKB": size_kb(game["prgrom"]) if "prgrom" in game else None,
            "chrROMSizeKB": size_kb(game["chrrom"]) if "chrrom" in game else None,
            "mirroring": pcb.get("mirroring"),
            "usesBattery": parse_bool_strict(pcb.get("battery", "0")),
        }
        # Unknown fields are left out rather than written as null.
        entries.append({k: v for k, v in entry.items() if v is not None})

    # Named entries first, then alphabetical.
    entries.sort(key=lambda e: (
        "name" not in e,
        e.get("name", "").casefold(),
    ))
    return entries


def render_lookup_html(entries, template_html):
    if LOOKUP_PLACEHOLDER not in template_html:
        raise ConfigError(f"Template has no {LOOKUP_PLACEHOLDER} placeholder")
    html = template_html.replace(LOOKUP_PLACEHOLDER, json.dumps(entries, ensure_ascii=False))
    return GENERATED_BANNER + html


def write_lookup_page(entries, template_path, output_path):
    with open(template_path, "r", encoding="utf-8") as f:
        template_html = f.read()

    out_dir = os.path.dirname(output_path)
    if out_dir:
        os.makedirs(out_dir, exist_ok=True)

    with open(output_path, "w", encoding="utf-8") as f:
        f.write(render_lookup_html(entries, template_html))
