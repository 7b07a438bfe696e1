"""Version information for the orderbook arbitrage bot."""

__version__ = "0.4.0"
__version_info__ = tuple(int(i) for i in __version__.split("."))


def get_version() -> str:
    return __version__
