from stackcraft.version import __version__  # noqa: F401
