import os
import zlib

import pytest

from nes_index import Game


def write_rom(rom_dir, name, data, prg_size=None, chr_size=0, header_data=None):
    """Write <name>.unh and return the matching catalog Game."""
    with open(os.path.join(rom_dir, name + ".unh"), "wb") as f:
        f.write(data)
    return Game(
        rom_crc32=f"{zlib.crc32(data) & 0xffffffff:08X}",
        name=name,
        filename=name + ".nes",
        prg_rom_size=len(data) - chr_size if prg_size is None else prg_size,
        chr_rom_size=chr_size,
        nes2_header_data=header_data or {"pcb": {"mapper": 0, "mirroring": "H", "battery": False}},
    )


@pytest.fixture
def rom_dir(tmp_path):
    d = tmp_path / "roms"
    d.mkdir()
    return str(d)


@pytest.fixture
def make_rom(rom_dir):
    def _make(name, data, prg_size=None, chr_size=0, header_data=None):
        return write_rom(rom_dir, name, data, prg_size, chr_size, header_data)
    return _make
