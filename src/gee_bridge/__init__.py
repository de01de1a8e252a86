"""gee-bridge - Google Earth Engine session, asset, export, map and extraction tools.

The interactive map (``gee_bridge.map``) and static previews
(``gee_bridge.thumbnail``) are imported on demand.
"""

from importlib.metadata import version, PackageNotFoundError

# Get version from installed package metadata (reads from pyproject.toml)
try:
    __version__ = version("gee-bridge-python")
except PackageNotFoundError:
    # Package not installed (development mode)
    __version__ = "0.0.0.dev"

from gee_bridge.ee_auth import (
    check_authentication,
    get_session,
    initialize_ee,
    is_authenticated,
    print_authentication_status,
    reset_ee,
)
from gee_bridge.convert import to_ee_features, to_ee_geometry
from gee_bridge.describe import collection_dates, print_info
from gee_bridge.extract import extract_time_series, extract_values
from gee_bridge.tasks import TaskFailedError, wait_for_task

__all__ = [
    "__version__",
    "check_authentication",
    "get_session",
    "initialize_ee",
    "is_authenticated",
    "print_authentication_status",
    "reset_ee",
    "to_ee_features",
    "to_ee_geometry",
    "collection_dates",
    "print_info",
    "extract_time_series",
    "extract_values",
    "TaskFailedError",
    "wait_for_task",
]
