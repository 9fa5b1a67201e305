"""csv-relay API package root.

The actual FastAPI application lives in :pymod:`csv_relay.api.app`. Importing
the package itself does not build the application, so tooling such as
``pytest --collect-only`` stays cheap; ``csv_relay.api:app`` is resolved on
first attribute access.
"""

from __future__ import annotations

from importlib import import_module as _import_module
from typing import Any


def __getattr__(name: str) -> Any:
    if name == "app":
        return _import_module(".app", package=__name__).app
    raise AttributeError(f"module {__name__!r} has no attribute {name!r}")
