"""
CLI Entrypoint Module

Subcommands:
- normalize RESPONSE_FILE: normalize a saved raw model response and print the payload
- prompt PART_ID --inventory FILE: print the generation prompt for a part
- generate PART_ID --inventory FILE: run the full pipeline against a YAML inventory

Usage:
    shopfloor normalize response.txt
    shopfloor prompt P1 --inventory shop.yaml
    shopfloor generate P1 --inventory shop.yaml
"""

import argparse
import json
import logging
import sys
from typing import Optional

from .config import load_settings
from .errors import ItineraryError
from .normalizer import normalize_response
from .orchestrator import load_snapshot, prepare_prompt, run_itinerary_pipeline
from .store import InMemoryShop
from .world import build_demo_shop, load_shop_file


def _load_shop(path: Optional[str]) -> InMemoryShop:
    return load_shop_file(path) if path else build_demo_shop()


def _cmd_normalize(args: argparse.Namespace) -> int:
    with open(args.response_file, encoding="utf-8") as fh:
        raw_text = fh.read()
    snapshot = load_snapshot(_load_shop(args.inventory)) if args.inventory else None
    result = normalize_response(raw_text, snapshot)
    print(result.to_payload().model_dump_json(indent=2))
    for warning in result.warnings:
        print(f"warning: {warning}", file=sys.stderr)
    return 0


def _cmd_prompt(args: argparse.Namespace) -> int:
    _snapshot, prompt = prepare_prompt(args.part_id, _load_shop(args.inventory))
    print(prompt)
    return 0


def _cmd_generate(args: argparse.Namespace) -> int:
    settings = load_settings()
    shop = _load_shop(args.inventory)
    itinerary = run_itinerary_pipeline(args.part_id, shop, shop, settings)
    print(json.dumps(itinerary.model_dump(mode="json"), indent=2))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="shopfloor",
        description="Machining itinerary generation (inventory -> prompt -> model -> normalized steps).",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    p_norm = sub.add_parser("normalize", help="Normalize a saved raw model response.")
    p_norm.add_argument("response_file", help="File holding the raw model text.")
    p_norm.add_argument("--inventory", help="YAML inventory to enforce tool/machine attribution against.")
    p_norm.set_defaults(func=_cmd_normalize)

    p_prompt = sub.add_parser("prompt", help="Print the generation prompt for a part.")
    p_prompt.add_argument("part_id")
    p_prompt.add_argument("--inventory", help="YAML inventory file (default: demo shop).")
    p_prompt.set_defaults(func=_cmd_prompt)

    p_gen = sub.add_parser("generate", help="Generate an itinerary (needs OPENAI_API_KEY).")
    p_gen.add_argument("part_id")
    p_gen.add_argument("--inventory", help="YAML inventory file (default: demo shop).")
    p_gen.set_defaults(func=_cmd_generate)

    return parser


def main(argv: Optional[list[str]] = None) -> int:
    """Run the shopfloor CLI.

    Returns:
        0 on success, 1 on a pipeline error.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    try:
        return args.func(args)
    except ItineraryError as exc:
        logging.getLogger(__name__).debug("pipeline failed", exc_info=True)
        print(f"ERROR: {exc.message}", file=sys.stderr)
        if exc.details:
            print(json.dumps(exc.details, indent=2, default=str), file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
