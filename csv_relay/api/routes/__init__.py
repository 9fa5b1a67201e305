"""csv_relay/api/routes/__init__.py
###############################################################################
FastAPI **router package marker**.
###############################################################################
Each route module (e.g. *upload.py*, *admin.py*) defines a module-level
``router`` of type ``fastapi.APIRouter``; registration happens in
`csv_relay.api.app`.
"""

from __future__ import annotations

__all__: list[str] = []
