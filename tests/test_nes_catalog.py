import pytest

from nes_catalog import (
    CatalogFilters,
    load_games,
    load_nes20db,
    load_nointro,
    map_by_crc32,
    nes20db_crc32,
    parse_bool_strict,
    parse_int_strict,
    should_ignore_game,
)
from nes_errors import CatalogError

NES20DB = r"""<?xml version="1.0" encoding="UTF-8"?>
<nes20db date="2022-10-29">
<game>
<!-- Licensed\Tetris (USA) -->
<prgrom size="32768" crc32="11111111" sha1="x" sum16="0001"/>
<chrrom size="16384" crc32="22222222" sha1="x" sum16="0002"/>
<rom size="49152" crc32="1394f57e" sha1="x"/>
<pcb mapper="1" submapper="0" mirroring="H" battery="0"/>
<console type="0" region="0"/>
</game>
<game>
<!-- Licensed\Zelda (USA) -->
<prgrom size="131072" crc32="33333333" sha1="x" sum16="0003"/>
<rom size="131072" crc32="3FE272FB" sha1="x"/>
<prgram size="8192"/>
<prgnvram size="8192"/>
<chrram size="8192"/>
<pcb mapper="1" submapper="2" mirroring="H" battery="1"/>
<expansion type="1"/>
</game>
<game>
<!-- Homebrew\Some Demo -->
<prgrom size="16384" crc32="44444444" sha1="x" sum16="0004"/>
<chrrom size="8192" crc32="55555555" sha1="x" sum16="0005"/>
<rom size="24576" crc32="AAAAAAAA" sha1="x"/>
<pcb mapper="0" submapper="0" mirroring="V" battery="0"/>
</game>
<game>
<!-- Licensed\No Size -->
<rom size="8192" crc32="BBBBBBBB" sha1="x"/>
<pcb mapper="0" submapper="0" mirroring="V" battery="0"/>
</game>
</nes20db>
"""

NOINTRO = """<?xml version="1.0"?>
<datafile>
  <header><name>Nintendo - Nintendo Entertainment System (Headerless)</name></header>
  <game name="Tetris (USA)">
    <description>Tetris (USA)</description>
    <rom name="Tetris (USA).nes" size="49152" crc="1394F57E" md5="x" sha1="x"/>
  </game>
  <game name="Legend of Zelda, The (USA)">
    <description>Legend of Zelda, The (USA)</description>
    <rom name="Legend of Zelda, The (USA).nes" size="131072" crc="3fe272fb" md5="x" sha1="x"/>
  </game>
  <game name="Some Demo (World)">
    <description>Some Demo (World)</description>
    <rom name="Some Demo (World).nes" size="24576" crc="AAAAAAAA"/>
  </game>
  <game name="No Size (Japan)">
    <rom name="No Size (Japan).nes" size="8192" crc="BBBBBBBB"/>
  </game>
  <game name="Unknown Cart (USA)">
    <rom name="Unknown Cart (USA).nes" size="8192" crc="CCCCCCCC"/>
  </game>
  <game name="Broken Entry (USA)">
    <rom name="Broken Entry (USA).nes" size="8192"/>
  </game>
</datafile>
"""


@pytest.fixture
def catalogs(tmp_path):
    nes2db_path = tmp_path / "nes20db.xml"
    nes2db_path.write_text(NES20DB, encoding="utf-8")
    nointro_path = tmp_path / "nointro.dat"
    nointro_path.write_text(NOINTRO, encoding="utf-8")
    return load_nes20db(str(nes2db_path)), load_nointro(str(nointro_path))

# ---------------------- strict parsing ---------------------

def test_parse_int_strict():
    assert parse_int_strict("32768") == 32768
    assert parse_int_strict("0") == 0
    for bad in ("", "32k", "-1", "1.5", " 12", None):
        with pytest.raises(CatalogError):
            parse_int_strict(bad)


def test_parse_bool_strict():
    assert parse_bool_strict("1") is True
    assert parse_bool_strict("0") is False
    for bad in ("true", "yes", "2", "", None):
        with pytest.raises(CatalogError):
            parse_bool_strict(bad)

# ---------------------- XML loading ------------------------

def test_load_nes20db_keeps_file_order_and_comment(catalogs):
    nes2db, _ = catalogs

    assert [nes20db_crc32(g) for g in nes2db] == ["1394F57E", "3FE272FB", "AAAAAAAA", "BBBBBBBB"]
    tetris = nes2db[0]
    assert tetris["_comment"] == "Licensed\\Tetris (USA)"
    assert tetris["prgrom"]["size"] == "32768"
    assert tetris["pcb"]["mirroring"] == "H"


def test_load_nes20db_keeps_duplicate_crc_rows(tmp_path):
    path = tmp_path / "nes20db.xml"
    path.write_text(
        "<nes20db>"
        '<game><rom crc32="1394F57E"/><pcb mapper="1"/></game>'
        '<game><rom crc32="1394f57e"/><pcb mapper="4"/></game>'
        '<game><pcb mapper="0"/></game>'
        "</nes20db>",
        encoding="utf-8",
    )
    nes2db = load_nes20db(str(path))

    assert [g["pcb"]["mapper"] for g in nes2db] == ["1", "4"]
    assert map_by_crc32(nes2db)["1394F57E"]["pcb"]["mapper"] == "4"


def test_load_nointro(catalogs):
    _, nointro = catalogs

    assert len(nointro) == 6
    assert nointro[0]["name"] == "Tetris (USA)"
    assert nointro[0]["rom"]["name"] == "Tetris (USA).nes"
    assert "crc" not in nointro[-1]["rom"]


def test_missing_catalog_file(tmp_path):
    with pytest.raises(CatalogError):
        load_nes20db(str(tmp_path / "nope.xml"))


def test_malformed_xml(tmp_path):
    path = tmp_path / "bad.xml"
    path.write_text("<nes20db><game>", encoding="utf-8")
    with pytest.raises(CatalogError):
        load_nes20db(str(path))

# ---------------------- joining ----------------------------

def test_load_games_joins_both_catalogs(catalogs, capsys):
    games, stats = load_games(*catalogs)

    assert [g.name for g in games] == [
        "Tetris (USA)",
        "Legend of Zelda, The (USA)",
        "Some Demo (World)",
    ]
    tetris = games[0]
    assert tetris.rom_crc32 == "1394F57E"
    assert tetris.filename == "Tetris (USA).nes"
    assert tetris.prg_rom_size == 32768
    assert tetris.chr_rom_size == 16384

    assert stats.total == 6
    assert stats.included == 3
    assert stats.missing_crc32 == 1
    assert stats.missing_nes2_data == 1
    assert stats.missing_prg_size == 1
    assert stats.ignored == 0
    assert stats.other == 2

    out = capsys.readouterr().out
    assert "Broken Entry (USA)" in out
    assert "BBBBBBBB No Size (Japan)" in out


def test_header_data_is_parsed(catalogs):
    games, _ = load_games(*catalogs)
    tetris, zelda = games[0], games[1]

    assert tetris.nes2_header_data == {
        "rom": {"size": 49152, "crc32": "1394f57e"},
        "pcb": {"mapper": 1, "submapper": 0, "mirroring": "H", "battery": False},
        "prgrom": {"size": 32768, "crc32": "11111111"},
        "chrrom": {"size": 16384, "crc32": "22222222"},
        "console": {"type": "0", "region": "0"},
    }

    assert zelda.chr_rom_size == 0
    assert zelda.nes2_header_data["pcb"] == {
        "mapper": 1, "submapper": 2, "mirroring": "H", "battery": True,
    }
    assert zelda.nes2_header_data["prgnvram"] == {"size": 8192}
    assert zelda.nes2_header_data["chrram"] == {"size": 8192}
    assert zelda.nes2_header_data["expansion"] == {"type": "1"}
    assert "chrrom" not in zelda.nes2_header_data


def test_load_games_applies_filters(catalogs):
    filters = CatalogFilters(
        nes2db_name_patterns=[r"^Homebrew\\"],
        rom_crc32s=["1394f57e"],
    )
    games, stats = load_games(*catalogs, filters)

    assert [g.name for g in games] == ["Legend of Zelda, The (USA)"]
    assert stats.ignored == 2


def test_malformed_size_aborts(catalogs):
    nes2db, nointro = catalogs
    nes2db[0]["prgrom"]["size"] = "32k"

    with pytest.raises(CatalogError):
        load_games(nes2db, nointro)


def test_malformed_battery_aborts(catalogs):
    nes2db, nointro = catalogs
    nes2db[1]["pcb"]["battery"] = "yes"

    with pytest.raises(CatalogError):
        load_games(nes2db, nointro)

# ---------------------- filters ----------------------------

def test_should_ignore_game():
    filters = CatalogFilters(
        nes2db_name_patterns=[r"^BIOS\\"],
        nointro_name_patterns=[r"\(Virtual Console\)"],
        rom_crc32s=["DEADBEEF"],
    )

    assert should_ignore_game("BIOS\\FDS", "Disk System", "00000000", filters)
    assert should_ignore_game("Licensed\\X", "X (Virtual Console)", "00000000", filters)
    assert should_ignore_game("Licensed\\X", "X (USA)", "DEADBEEF", filters)
    assert not should_ignore_game("Licensed\\X", "X (USA)", "00000000", filters)
    assert not should_ignore_game("Licensed\\X", None, "00000000", filters)


def test_ignore_nameless():
    filters = CatalogFilters(ignore_nameless=True)

    assert should_ignore_game("Licensed\\X", None, "00000000", filters)
    assert not should_ignore_game("Licensed\\X", "X (USA)", "00000000", filters)
