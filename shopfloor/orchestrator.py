"""
Orchestrator Module

Wires the itinerary-generation pipeline for one request:

    inventory rows -> aggregate_inventory -> compose_prompt -> call_llm_text
        -> normalize_response -> store

Stages run strictly in sequence. Any failure aborts the request and nothing
is stored; previously stored itineraries for the part are never touched.
"""

import logging
from typing import Optional

from .config import Settings
from .errors import InventoryFetchFailed, ItineraryError, PersistenceFailed
from .inventory import aggregate_inventory
from .llm import call_llm_text
from .models import InventorySnapshot, Itinerary, Part
from .normalizer import normalize_response
from .prompts import compose_prompt
from .store import InventorySource, ItineraryStore

logger = logging.getLogger(__name__)


def load_snapshot(inventory: InventorySource) -> InventorySnapshot:
    """
    Read every inventory table and aggregate it.

    Raises:
        InventoryFetchFailed: if any lookup fails.
    """
    try:
        machines = inventory.fetch_machines()
        tools = inventory.fetch_tooling()
        tool_types = inventory.fetch_tool_types()
        materials = inventory.fetch_materials()
    except ItineraryError:
        raise
    except Exception as exc:
        logger.exception("inventory lookup failed")
        raise InventoryFetchFailed("Error fetching inventory data", details={"message": str(exc)}) from exc

    snapshot = aggregate_inventory(machines, tools, tool_types, materials)
    logger.info(
        "inventory snapshot: %d machines, %d tools, %d materials",
        len(snapshot.machines),
        len(snapshot.tools),
        len(snapshot.materials),
    )
    return snapshot


def _load_part(inventory: InventorySource, part_id: str) -> tuple[Part, Optional[str]]:
    try:
        part = inventory.fetch_part(part_id)
    except ItineraryError:
        raise
    except Exception as exc:
        logger.exception("part lookup failed")
        raise InventoryFetchFailed("Error fetching part data", details={"message": str(exc)}) from exc

    svg_content = inventory.fetch_vector_preview(part)
    return part, svg_content


def prepare_prompt(part_id: str, inventory: InventorySource) -> tuple[InventorySnapshot, str]:
    """Load the part and inventory and compose the generation prompt."""
    part, svg_content = _load_part(inventory, part_id)
    snapshot = load_snapshot(inventory)
    return snapshot, compose_prompt(snapshot, part, svg_content)


def run_itinerary_pipeline(
    part_id: str,
    inventory: InventorySource,
    store: ItineraryStore,
    settings: Settings,
) -> Itinerary:
    """
    Generate, normalize and store an itinerary for a part.

    Args:
        part_id: Part to plan
        inventory: Source of part and inventory rows
        store: Where the normalized itinerary is written
        settings: Runtime configuration

    Returns:
        The stored Itinerary

    Raises:
        UpstreamConfigMissing: generation-service key not configured
        InventoryFetchFailed: a part or inventory lookup failed
        ModelInvocationFailed: the model call failed
        ModelResponseUnparseable: the model text held no usable JSON
        PersistenceFailed: the store operation failed
    """
    logger.info("run_itinerary_pipeline part_id=%s", part_id)

    # Checked before any inventory traffic
    settings.require_openai_api_key()

    snapshot, prompt = prepare_prompt(part_id, inventory)

    raw_text = call_llm_text(prompt, settings)

    result = normalize_response(raw_text, snapshot)

    try:
        itinerary = store.store(part_id, result.steps, result.total_cost)
    except ItineraryError:
        raise
    except Exception as exc:
        logger.exception("itinerary store failed")
        raise PersistenceFailed("Error saving itinerary data", details={"message": str(exc)}) from exc

    logger.info(
        "itinerary %s stored for part %s: %d steps, total_cost=%.2f",
        itinerary.id,
        part_id,
        len(itinerary.steps.steps),
        itinerary.total_cost,
    )
    return itinerary


def latest_itinerary(part_id: str, store: ItineraryStore) -> Optional[Itinerary]:
    """Most recent stored itinerary for a part, or None."""
    try:
        return store.fetch_latest(part_id)
    except ItineraryError:
        raise
    except Exception as exc:
        logger.exception("itinerary lookup failed")
        raise PersistenceFailed("Error fetching itinerary data", details={"message": str(exc)}) from exc
