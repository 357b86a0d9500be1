#!/usr/bin/env python3
"""
Import cards and their seed bundles from JSON into the database.

Usage:
    python import_cards.py
    python import_cards.py --json data/cards.json

The file holds a list of card objects (or {"cards": [...]}) with the keys
id, cardIdea, wordsToAvoid, componentStructure, validPermutations, title,
description, banner and seedBundles.
"""

import sys
import os
import argparse

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from inquizit import db
from inquizit.errors import ValidationError


def main() -> None:
    parser = argparse.ArgumentParser(description="Import cards JSON into the database")
    parser.add_argument(
        "--json",
        default="data/cards.json",
        help="Path to the cards JSON file (default: data/cards.json)",
    )
    args = parser.parse_args()

    if not os.path.exists(args.json):
        print(f"❌ JSON file not found: {args.json}")
        sys.exit(1)

    # Ensure tables exist
    if not db.is_db_initialized():
        db.init_db()
        print("✅ Database initialized")

    try:
        count = db.import_cards_json(args.json)
    except ValidationError as e:
        print(f"❌ Invalid card data: {e}")
        sys.exit(1)

    if count == 0:
        print("ℹ️  All cards already imported (0 new)")
    else:
        print(f"🎉 Successfully imported {count} cards!")


if __name__ == "__main__":
    main()
