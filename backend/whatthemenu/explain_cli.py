#!/usr/bin/env python3
from __future__ import annotations

import argparse
import asyncio
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[2]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from backend.whatthemenu.matcher import CorpusMatcher  # noqa: E402
from backend.whatthemenu.menu_language import detect_menu_language  # noqa: E402
from backend.whatthemenu.normalize import normalize  # noqa: E402
from backend.whatthemenu.settings import SUPPORTED_LANGUAGES  # noqa: E402
from backend.whatthemenu.similarity import get_strategy  # noqa: E402
from backend.whatthemenu.storage import CorpusStore  # noqa: E402


def _emit(payload: dict, as_json: bool, text: str) -> None:
    if as_json:
        print(json.dumps(payload, ensure_ascii=False, indent=2))
    else:
        print(text)


def cmd_similarity(args: argparse.Namespace) -> int:
    strategy = get_strategy(args.strategy)
    score = strategy.score(args.a, args.b)
    payload = {
        "a": normalize(args.a),
        "b": normalize(args.b),
        "strategy": strategy.name,
        "score": round(score, 4),
        "threshold": strategy.threshold,
        "match": score >= strategy.threshold,
    }
    verdict = "match" if payload["match"] else "no match"
    _emit(payload, args.json, f"{score:.4f} ({strategy.name}, {verdict})")
    return 0


def cmd_detect(args: argparse.Namespace) -> int:
    language = detect_menu_language(args.text)
    _emit({"text": args.text, "menu_language": language}, args.json, language)
    return 0


async def _match(args: argparse.Namespace) -> int:
    store = CorpusStore.from_url(args.database) if args.database else CorpusStore()
    try:
        corpus_slice = await store.query_by_language(args.lang)
    finally:
        await store.close()
    outcome = CorpusMatcher.from_settings().evaluate(
        args.name, args.lang, corpus_slice, args.restaurant_id
    )
    hit = outcome.hit
    payload = {
        "name": args.name,
        "language": args.lang,
        "candidates": len(corpus_slice),
        "best_score": round(outcome.best_score, 4),
        "hit": hit.record.model_dump(mode="json") if hit else None,
    }
    if hit:
        text = f"hit: {hit.record.name!r} (score {hit.score:.4f})\n{hit.record.explanation}"
    else:
        text = f"miss (best score {outcome.best_score:.4f} over {len(corpus_slice)} dishes)"
    _emit(payload, args.json, text)
    return 0 if hit else 1


def cmd_match(args: argparse.Namespace) -> int:
    return asyncio.run(_match(args))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Inspect dish matching and the explanation corpus.")
    parser.add_argument("--json", action="store_true", help="Emit JSON instead of text")
    sub = parser.add_subparsers(dest="command", required=True)

    p_sim = sub.add_parser("similarity", help="Score two dish names")
    p_sim.add_argument("a")
    p_sim.add_argument("b")
    p_sim.add_argument("--strategy", choices=["levenshtein", "overlap"], default="levenshtein")
    p_sim.set_defaults(func=cmd_similarity)

    p_detect = sub.add_parser("detect", help="Guess the language a menu item is written in")
    p_detect.add_argument("text")
    p_detect.set_defaults(func=cmd_detect)

    p_match = sub.add_parser("match", help="Look a dish name up in the corpus")
    p_match.add_argument("name")
    p_match.add_argument("--lang", choices=SUPPORTED_LANGUAGES, default="en")
    p_match.add_argument("--restaurant-id", type=int, default=None)
    p_match.add_argument("--database", help="SQLAlchemy async URL (defaults to settings)")
    p_match.set_defaults(func=cmd_match)
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
