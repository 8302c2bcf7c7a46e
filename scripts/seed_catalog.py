#!/usr/bin/env python3
"""Load services, knowledge documents and market pulse insights from JSON.

The file format matches ``data/demo_catalog.json``. Writes go to the database
selected by settings (``TURSO_DATABASE_URL`` or ``DATABASE_PATH``).

Usage:
    uv run python scripts/seed_catalog.py
    uv run python scripts/seed_catalog.py --file my_catalog.json
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from concierge.store.knowledge import KnowledgeStore  # noqa: E402
from concierge.store.market_pulse import MarketPulseStore  # noqa: E402
from concierge.store.services import ServiceCatalog  # noqa: E402

DEFAULT_FILE = Path(__file__).resolve().parent.parent / "data" / "demo_catalog.json"


async def seed(catalog: dict) -> None:
    services = ServiceCatalog.get()
    for svc in catalog.get("services", []):
        await services.add_service(
            service_id=svc["id"],
            title=svc["title"],
            description=svc.get("description", ""),
            category=svc.get("category", ""),
            price=svc.get("price"),
            is_active=svc.get("is_active", True),
        )
    print(f"Services: {len(catalog.get('services', []))}")

    knowledge = KnowledgeStore.get()
    for doc in catalog.get("documents", []):
        await knowledge.add_document(doc["title"], doc["chunks"], source=doc.get("source", "kb"))
    print(f"Documents: {len(catalog.get('documents', []))}")

    pulse = MarketPulseStore.get()
    for cohort, insights in catalog.get("market_pulse", {}).items():
        await pulse.add(cohort, insights)
    print(f"Market pulse cohorts: {len(catalog.get('market_pulse', {}))}")


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument("--file", type=Path, default=DEFAULT_FILE, help="Catalog JSON file")
    args = parser.parse_args()

    if not args.file.exists():
        print(f"Error: {args.file} not found", file=sys.stderr)
        sys.exit(1)

    catalog = json.loads(args.file.read_text(encoding="utf-8"))
    asyncio.run(seed(catalog))


if __name__ == "__main__":
    main()
