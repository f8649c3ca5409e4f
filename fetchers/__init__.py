# fetchers/__init__.py
from . import outlet

SOURCES = {
    "capture": outlet.CaptureSource,
}
