"""
REST-backed inventory source and itinerary store.

Talks to a PostgREST-style API (tables under /rest/v1/) with the caller's
bearer credential forwarded on every request, so row-level authorization is
enforced by the backend. The credential is never interpreted here.
"""

import logging
from typing import Any, Optional

import httpx
from pydantic import ValidationError

from .config import Settings
from .errors import InventoryFetchFailed, PersistenceFailed
from .models import Itinerary, ItineraryPayload, ItineraryStep, Machine, Material, Part, Tool, ToolType
from .store import row_to_itinerary

logger = logging.getLogger(__name__)


def _error_body(response: httpx.Response) -> Any:
    try:
        return response.json()
    except ValueError:
        return {"status_code": response.status_code, "body": response.text[:500]}


class RestShopClient:
    """InventorySource and ItineraryStore over HTTP."""

    def __init__(
        self,
        settings: Settings,
        credential: str,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        if not settings.rest_url:
            raise ValueError("RestShopClient requires settings.rest_url")
        headers = {
            "Authorization": credential,
            "Content-Type": "application/json",
        }
        if settings.rest_anon_key:
            headers["apikey"] = settings.rest_anon_key
        self._client = httpx.Client(
            base_url=settings.rest_url.rstrip("/") + "/rest/v1",
            headers=headers,
            timeout=settings.rest_timeout_seconds,
            transport=transport,
        )

    def close(self) -> None:
        self._client.close()

    def __enter__(self):
        return self

    def __exit__(self, *exc_info):
        self.close()

    def _select(self, table: str, message: str, params: Optional[dict[str, str]] = None) -> list[dict[str, Any]]:
        query = {"select": "*"}
        query.update(params or {})
        try:
            response = self._client.get(f"/{table}", params=query)
        except httpx.HTTPError as exc:
            logger.warning("%s: %s", message, exc)
            raise InventoryFetchFailed(message, details={"message": str(exc)}) from exc
        if response.is_error:
            logger.warning("%s: HTTP %s", message, response.status_code)
            raise InventoryFetchFailed(message, details=_error_body(response))
        return response.json()

    def _rows_as(
        self,
        rows: list[dict[str, Any]],
        model,
        message: str,
        context: Optional[dict[str, Any]] = None,
    ) -> list:
        try:
            return [model.model_validate(row, context=context) for row in rows]
        except ValidationError as exc:
            raise InventoryFetchFailed(message, details={"message": str(exc)}) from exc

    # -- InventorySource --------------------------------------------------

    def fetch_part(self, part_id: str) -> Part:
        message = "Error fetching part data"
        rows = self._select("parts", message, {"id": f"eq.{part_id}"})
        if not rows:
            raise InventoryFetchFailed(message, details={"part_id": part_id}, status_code=404)
        return self._rows_as(rows[:1], Part, message)[0]

    def fetch_machines(self) -> list[Machine]:
        message = "Error fetching machine data"
        return self._rows_as(self._select("machines", message), Machine, message)

    def fetch_tooling(self) -> list[Tool]:
        message = "Error fetching tooling data"
        return self._rows_as(self._select("tooling", message), Tool, message)

    def fetch_tool_types(self) -> list[ToolType]:
        message = "Error fetching tool type data"
        return self._rows_as(self._select("tool_types", message), ToolType, message)

    def fetch_materials(self) -> list[Material]:
        message = "Error fetching materials data"
        # stored rows may predate the per-shape dimension rules
        return self._rows_as(
            self._select("materials", message), Material, message, context={"lenient_dimensions": True}
        )

    def fetch_vector_preview(self, part: Part) -> Optional[str]:
        """Download the part's SVG preview; any failure falls back to None."""
        if not part.svg_url:
            return None
        request = self._client.build_request("GET", part.svg_url)
        # the preview lives in file storage; don't leak the caller's token to it
        request.headers.pop("Authorization", None)
        request.headers.pop("apikey", None)
        try:
            response = self._client.send(request)
        except httpx.HTTPError as exc:
            logger.warning("error fetching SVG content for part %s: %s", part.id, exc)
            return None
        if response.is_error:
            logger.warning("failed to fetch SVG content for part %s: HTTP %s", part.id, response.status_code)
            return None
        logger.info("fetched SVG content for part %s (%d chars)", part.id, len(response.text))
        return response.text

    # -- ItineraryStore ---------------------------------------------------

    def store(self, part_id: str, steps: list[ItineraryStep], total_cost: float) -> Itinerary:
        message = "Error saving itinerary data"
        payload = ItineraryPayload(steps=steps, total_cost=total_cost)
        body = {
            "part_id": part_id,
            "steps": payload.model_dump(mode="json"),
            "total_cost": total_cost,
        }
        try:
            response = self._client.post(
                "/itineraries",
                json=body,
                headers={"Prefer": "return=representation"},
            )
        except httpx.HTTPError as exc:
            logger.warning("%s: %s", message, exc)
            raise PersistenceFailed(message, details={"message": str(exc)}) from exc
        if response.is_error:
            logger.warning("%s: HTTP %s", message, response.status_code)
            raise PersistenceFailed(message, details=_error_body(response))

        rows = response.json()
        row = rows[0] if isinstance(rows, list) and rows else rows
        if not isinstance(row, dict):
            raise PersistenceFailed(message, details={"message": "insert returned no row"})
        itinerary = row_to_itinerary(row)
        logger.info("stored itinerary %s for part %s (%d steps)", itinerary.id, part_id, len(steps))
        return itinerary

    def fetch_latest(self, part_id: str) -> Optional[Itinerary]:
        message = "Error fetching itinerary data"
        try:
            response = self._client.get(
                "/itineraries",
                params={
                    "select": "*",
                    "part_id": f"eq.{part_id}",
                    "order": "created_at.desc",
                    "limit": "1",
                },
            )
        except httpx.HTTPError as exc:
            raise PersistenceFailed(message, details={"message": str(exc)}) from exc
        if response.is_error:
            raise PersistenceFailed(message, details=_error_body(response))
        rows = response.json()
        if not rows:
            return None
        return row_to_itinerary(rows[0])
