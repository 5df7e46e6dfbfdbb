"""
deploy-bench: trigger-and-poll orchestration for deployment build benchmarks.

The package monitors builds that were pushed to several hosting platforms,
normalizes each platform's status vocabulary, and records the timings.
"""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("deploy-bench")
except PackageNotFoundError:  # pragma: no cover - fallback for source checkouts
    __version__ = "0.0.0"

__all__ = ["__version__"]
