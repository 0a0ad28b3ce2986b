from __future__ import annotations
from pathlib import Path
import os
import sys

def package_dir() -> Path:
    """src/charsheet in a checkout, or the unpacked bundle under PyInstaller."""
    bundle = getattr(sys, "_MEIPASS", None)
    if bundle:
        return Path(bundle) / "charsheet"
    return Path(__file__).resolve().parent.parent

def content_dir() -> Path:
    return package_dir() / "content"

def user_dir() -> Path:
    # settings.json and saves/ live here; CHARSHEET_HOME overrides ~/.charsheet
    override = os.environ.get("CHARSHEET_HOME")
    return Path(override) if override else Path.home() / ".charsheet"
