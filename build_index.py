"""
build_index.py - Command line front end.

  build_index.py build            Build dist/nesIndex.json from the catalogs
  build_index.py lookup           Build dist/nesMapperLookup.html
  build_index.py identify FILE..  Identify headerless ROMs with a built index
"""

import os
import sys
import argparse
from colorama import Fore, Style, init

import nes_index
import nes_catalog
import mapper_lookup
from nes_config import load_config, index_filters, lookup_filters
from nes_errors import NesIndexError, ConfigError

init()

def warning(msg):
    return f"{Fore.LIGHTRED_EX}{msg}{Style.RESET_ALL}"

def dim(msg):
    return f"{Fore.LIGHTBLACK_EX}{msg}{Style.RESET_ALL}"

# ============================================================
# ========================= CATALOG ==========================
# ============================================================

def read_catalogs(setup):
    print("Reading and parsing data files...")
    nes2db = nes_catalog.load_nes20db(setup["NES20DB_XML"])
    nointro = nes_catalog.load_nointro(setup["NOINTRO_DAT"])
    return nes2db, nointro


def print_catalog_stats(stats):
    print(f"Including {stats.included}/{stats.total}")
    print(f"{stats.missing_nes2_data} missing NES2.0 header data")
    print(f"{stats.ignored} ignored")
    print(f"{stats.other} other")

# ============================================================
# ========================== REPORT ==========================
# ============================================================

def print_missing(report):
    if not report.missing:
        return
    print(warning(f"Missing files: {report.num_missing}"))
    for err in report.missing:
        print(f"{err.game.rom_crc32} {err.filename}")


def print_short_reads(report):
    if not report.short_reads:
        return
    print(warning(f"Files too short: {report.num_short_reads}"))
    for err in report.short_reads:
        print(f"{err.game.rom_crc32} {err.filepath} " + dim(f"{err.bytes_read}/{err.byte_length} bytes"))


def print_ambiguities(report):
    if not report.ambiguities:
        return
    print(warning(f"Failed to differentiate: {report.num_ambiguous}"))
    for amb in report.ambiguities:
        print(f"{amb.crc32_partial_hash} " + dim(f"PRG:{amb.prg_rom_byte_length} CHR:{amb.chr_rom_byte_length}"))
        for i, game in enumerate(amb.games):
            corner = "└" if i == len(amb.games) - 1 else "├"
            print(f"  {corner}─ {game}")


def print_summary(report):
    print(f"Indexed {report.num_indexed}/{len(report.games)}")
    print(f"{report.num_missing} files missing")
    print(f"{report.num_short_reads} files too short")
    print(f"{report.num_ambiguous} ambiguous")

# ============================================================
# ========================= COMMANDS =========================
# ============================================================

def cmd_build(args, setup):
    rom_dir = args.rom_dir or setup["HEADERLESS_ROM_DIR"]
    if not rom_dir:
        raise ConfigError("Must set HEADERLESS_ROM_DIR (config.txt, env var or --rom-dir).")
    if not os.path.isdir(rom_dir):
        raise ConfigError(f"HEADERLESS_ROM_DIR is not a directory: {rom_dir}")

    nes2db, nointro = read_catalogs(setup)
    games, stats = nes_catalog.load_games(nes2db, nointro, index_filters(setup))
    print_catalog_stats(stats)

    on_insert = None
    if args.print_all or setup["PRINT_ALL"]:
        on_insert = lambda game: print(dim(str(game)))

    print("Building index...")
    root, report = nes_index.build_index(
        games, rom_dir, setup["HEADER_PROBE_BYTES"], on_insert=on_insert
    )
    print("Done building.")

    print_missing(report)
    print_short_reads(report)
    print_ambiguities(report)
    print_summary(report)

    output = args.output or setup["INDEX_OUTPUT"]
    nes_index.write_index(root, output)
    print(f"\nDone. Index written to {output}")
    return 0


def cmd_lookup(args, setup):
    nes2db, nointro = read_catalogs(setup)
    entries = mapper_lookup.build_lookup_entries(nes2db, nointro, lookup_filters(setup))

    output = args.output or setup["LOOKUP_OUTPUT"]
    mapper_lookup.write_lookup_page(entries, setup["LOOKUP_TEMPLATE"], output)
    print(f"\nDone. {len(entries)} entries written to {output}")
    return 0


def cmd_identify(args, setup):
    index_path = args.index or setup["INDEX_OUTPUT"]
    if not os.path.exists(index_path):
        raise ConfigError(f"Missing index {index_path}. Run 'build' first.")
    index = nes_index.load_index(index_path)

    sep = f" {Fore.LIGHTBLACK_EX}|{Style.RESET_ALL} "
    unknown = 0
    for path in args.files:
        entry = nes_index.identify_file(index, path)
        if entry is None:
            unknown += 1
            print(f"{os.path.basename(path)}{sep}" + warning("unknown file"))
            continue

        pcb = entry["nes2HeaderData"].get("pcb", {})
        print(
            f"{os.path.basename(path)}"
            f"{sep}{entry['name']}"
            f"{sep}{entry['romCRC32']}"
            f"{sep}mapper {pcb.get('mapper')}"
            f"{sep}{pcb.get('mirroring')}"
            + (f"{sep}battery" if pcb.get("battery") else "")
        )
    return 1 if unknown else 0

# ============================================================
# ============================ MAIN ==========================
# ============================================================

def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="NES ROM partial-CRC32 index tools")
    parser.add_argument("--config", help="config file (default: specialconfig.txt or config.txt)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("build", help="build the identification index")
    p.add_argument("--rom-dir", help="headerless ROM directory")
    p.add_argument("--output", help="index JSON path")
    p.add_argument("--print-all", action="store_true", help="show every game as it is indexed")
    p.set_defaults(func=cmd_build)

    p = sub.add_parser("lookup", help="build the mapper lookup HTML page")
    p.add_argument("--output", help="HTML output path")
    p.set_defaults(func=cmd_lookup)

    p = sub.add_parser("identify", help="identify headerless ROM files")
    p.add_argument("--index", help="index JSON path")
    p.add_argument("files", nargs="+")
    p.set_defaults(func=cmd_identify)

    return parser.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)
    try:
        setup = load_config(args.config)
        return args.func(args, setup)
    except NesIndexError as err:
        print(warning(f"fatal: {err}"), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
