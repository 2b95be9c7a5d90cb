"""Hydro MRV: anomaly-scored, hash-attested emissions verification."""

try:
    from importlib.metadata import version as _pkg_version
    __version__ = _pkg_version("hydro-mrv")
except Exception:
    __version__ = "dev"
