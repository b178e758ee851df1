import os
from pathlib import Path

from cuckoo_tap.internal import constants


# ---------------------------------------------------------------------
# Base directories
# ---------------------------------------------------------------------

def get_app_data_dir() -> Path:
    """
    Returns the application data directory.

    - $CUCKOO_TAP_HOME when set
    - Windows: %APPDATA%\\cuckoo-tap
    - Linux/macOS: ~/.cuckoo-tap
    """
    override = os.environ.get(constants.ENV_HOME)
    if override:
        path = Path(override).expanduser()
    elif os.name == "nt":  # Windows
        base = os.environ.get("APPDATA", str(Path.home()))
        path = Path(base) / constants.APP_NAME
    else:  # Linux / macOS
        path = Path.home() / constants.DEFAULT_HOME_DIR_NAME

    path.mkdir(parents=True, exist_ok=True)
    return path


def get_prefix_dir() -> Path:
    """
    Install prefix; binaries land in <prefix>/bin.
    """
    override = os.environ.get(constants.ENV_PREFIX)
    path = Path(override).expanduser() if override else get_app_data_dir() / "prefix"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_cache_dir() -> Path:
    override = os.environ.get(constants.ENV_CACHE)
    path = Path(override).expanduser() if override else get_app_data_dir() / "cache"
    path.mkdir(parents=True, exist_ok=True)
    return path


def get_log_file() -> Path:
    log_dir = get_app_data_dir() / "logs"
    log_dir.mkdir(parents=True, exist_ok=True)
    return log_dir / constants.LOG_FILE_NAME


# ---------------------------------------------------------------------
# Formula search path
# ---------------------------------------------------------------------

def get_builtin_formula_dir() -> Path:
    """
    Formula files shipped with the package.
    """
    return Path(__file__).parent.parent / "formula"


def get_formula_dirs() -> list[Path]:
    """
    Directories searched for formula files, in priority order:
    $CUCKOO_TAP_FORMULA_PATH entries first, the shipped formulas last.
    """
    dirs: list[Path] = []
    extra = os.environ.get(constants.ENV_FORMULA_PATH, "")
    for entry in extra.split(os.pathsep):
        if entry.strip():
            dirs.append(Path(entry.strip()).expanduser())
    dirs.append(get_builtin_formula_dir())
    return dirs


# ---------------------------------------------------------------------
# Debug
# ---------------------------------------------------------------------

if __name__ == "__main__":
    print("App Data Dir:", get_app_data_dir())
    print("Prefix Dir:", get_prefix_dir())
    print("Cache Dir:", get_cache_dir())
    print("Log File:", get_log_file())
    print("Formula Dirs:", [str(d) for d in get_formula_dirs()])
