"""
polychat - Chat without barriers
"""

from importlib.metadata import version, PackageNotFoundError

try:
    __version__ = version("polychat")
except PackageNotFoundError:
    __version__ = "0.1.0"

__logo__ = "🦜"
