"""
Version information for ethbind.
"""
import importlib.metadata
import pathlib

import tomli

# Installed package metadata first, pyproject.toml for source checkouts
try:
    __version__ = importlib.metadata.version("ethbind")
except importlib.metadata.PackageNotFoundError:
    try:
        path = pathlib.Path(__file__).parent.parent / "pyproject.toml"
        with open(path, "rb") as f:
            data = tomli.load(f)
        __version__ = data["project"]["version"]
    except (FileNotFoundError, KeyError, tomli.TOMLDecodeError):
        __version__ = "0.0.0"
