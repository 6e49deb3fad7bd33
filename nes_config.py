import os

from nes_errors import ConfigError
from nes_catalog import CatalogFilters

# ============================================================
# ========================== SETUP ===========================
# ============================================================

def default_config_file():
    return "specialconfig.txt" if os.path.exists("specialconfig.txt") else "config.txt"


REQUIRED_KEYS = ("NES20DB_XML", "NOINTRO_DAT", "INDEX_OUTPUT")

# Relative paths in these keys are taken relative to the config file.
PATH_KEYS = (
    "HEADERLESS_ROM_DIR",
    "NES20DB_XML",
    "NOINTRO_DAT",
    "INDEX_OUTPUT",
    "LOOKUP_TEMPLATE",
    "LOOKUP_OUTPUT",
)

DEFAULTS = {
    "HEADERLESS_ROM_DIR": "",
    "LOOKUP_TEMPLATE": os.path.join("templates", "nesMapperLookup.html"),
    "LOOKUP_OUTPUT": os.path.join("dist", "nesMapperLookup.html"),
    "HEADER_PROBE_BYTES": 512,
    "PRINT_ALL": False,
    "INDEX_IGNORE_NES2DB_NAMES": [],
    "INDEX_IGNORE_NOINTRO_NAMES": [],
    "INDEX_IGNORE_ROM_CRC32": [],
    "LOOKUP_IGNORE_NAMELESS": True,
    "LOOKUP_IGNORE_NES2DB_NAMES": [],
    "LOOKUP_IGNORE_NOINTRO_NAMES": [],
    "LOOKUP_IGNORE_ROM_CRC32": [],
}


def load_setup(path):
    if not os.path.exists(path):
        raise ConfigError(f"Missing {path}")

    env = {}
    safe = {"os": os}

    with open(path, "r", encoding="utf-8") as f:
        code = f.read()

    exec(code, safe, env)
    return env


def load_config(path=None, environ=None):
    """
    Read config.txt, fill in defaults and apply the HEADERLESS_ROM_DIR
    environment override.
    """
    environ = os.environ if environ is None else environ
    path = path or default_config_file()
    setup = dict(DEFAULTS)
    setup.update(load_setup(path))

    missing = [k for k in REQUIRED_KEYS if not setup.get(k)]
    if missing:
        raise ConfigError(f"Missing config keys: {', '.join(missing)}")

    base_dir = os.path.dirname(os.path.abspath(path))
    for key in PATH_KEYS:
        if setup[key]:
            setup[key] = os.path.join(base_dir, setup[key])

    if environ.get("HEADERLESS_ROM_DIR"):
        setup["HEADERLESS_ROM_DIR"] = environ["HEADERLESS_ROM_DIR"]

    if not isinstance(setup["HEADER_PROBE_BYTES"], int) or setup["HEADER_PROBE_BYTES"] <= 0:
        raise ConfigError(f"HEADER_PROBE_BYTES must be a positive integer, got {setup['HEADER_PROBE_BYTES']!r}")

    return setup


def index_filters(setup):
    return CatalogFilters(
        nes2db_name_patterns=setup["INDEX_IGNORE_NES2DB_NAMES"],
        nointro_name_patterns=setup["INDEX_IGNORE_NOINTRO_NAMES"],
        rom_crc32s=setup["INDEX_IGNORE_ROM_CRC32"],
    )


def lookup_filters(setup):
    return CatalogFilters(
        nes2db_name_patterns=setup["LOOKUP_IGNORE_NES2DB_NAMES"],
        nointro_name_patterns=setup["LOOKUP_IGNORE_NOINTRO_NAMES"],
        rom_crc32s=setup["LOOKUP_IGNORE_ROM_CRC32"],
        ignore_nameless=setup["LOOKUP_IGNORE_NAMELESS"],
    )
