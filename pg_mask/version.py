from importlib.metadata import version, PackageNotFoundError

PG_MASK_VERSION = "1.0.0"

try:
    # Get version from metadata
    __version__ = version("pg_mask")
except PackageNotFoundError:
    # Package is not installed, running from sources
    __version__ = PG_MASK_VERSION
