#!/usr/bin/env python3
"""
Batch Note Evaluation Script

Runs the suggestion pipeline over every *.md / *.txt note in a directory
and prints a JSON report.

Usage:
    python scripts/evaluate_notes.py NOTES_DIR [--workers 4] [--max-suggestions 5] [--debug]
    python scripts/evaluate_notes.py NOTES_DIR --initiatives initiatives.json
"""

import argparse
import json
import logging
import sys
from pathlib import Path


def main():
    parser = argparse.ArgumentParser(description="Evaluate the suggestion pipeline over a directory of notes")
    parser.add_argument("notes_dir", type=str, help="Directory containing .md/.txt note files")
    parser.add_argument("--workers", type=int, default=4, help="Number of notes processed in parallel")
    parser.add_argument("--max-suggestions", type=int, default=None, help="Override the idea cap")
    parser.add_argument("--initiatives", type=str, default=None, help="JSON file with a list of initiatives")
    parser.add_argument("--debug", action="store_true", help="Collect per-note drop counts")
    parser.add_argument("--verbose", action="store_true", help="Log pipeline decisions")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
        stream=sys.stderr,
    )

    from suggestion_engine.common.config import load_config
    from suggestion_engine.common.embedding_service import create_embedding_service
    from suggestion_engine.common.schemas import InitiativeSnapshot
    from suggestion_engine.evaluation import evaluate_notes, load_notes_from_dir
    from suggestion_engine.pipeline import build_llm_classifier

    notes_dir = Path(args.notes_dir)
    if not notes_dir.is_dir():
        print(f"[Evaluate] ERROR: {notes_dir} is not a directory", file=sys.stderr)
        sys.exit(1)

    engine_config = load_config()
    config = engine_config.generator
    if args.max_suggestions is not None:
        config.max_suggestions = args.max_suggestions
    if args.debug:
        config.enable_debug = True

    initiatives = []
    if args.initiatives:
        with open(args.initiatives, encoding="utf-8") as f:
            initiatives = [InitiativeSnapshot(**item) for item in json.load(f)]

    notes = load_notes_from_dir(notes_dir)
    print(f"[Evaluate] {len(notes)} notes, {len(initiatives)} initiatives", file=sys.stderr)

    llm_classifier = None
    if config.use_llm_classifiers:
        llm_classifier = build_llm_classifier(engine_config.llm, config.llm_timeout_seconds)
    embedding_provider = None
    if config.embedding_enabled:
        embedding_provider = create_embedding_service(engine_config.embedding.mode, engine_config.embedding.model)

    try:
        report = evaluate_notes(
            notes,
            config,
            initiatives,
            max_workers=args.workers,
            llm_classifier=llm_classifier,
            embedding_provider=embedding_provider,
        )
    finally:
        if llm_classifier is not None:
            llm_classifier.close()
    print(json.dumps(report.model_dump(mode="json"), indent=2))


if __name__ == "__main__":
    main()
