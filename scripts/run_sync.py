#!/usr/bin/env python
"""
Entry point for the PNCP synchronization pipeline.

Usage:
    python scripts/run_sync.py            # yesterday's notices
    python scripts/run_sync.py --initial  # initial load (last 30 days)

Features:
- Fetches every notice published on the target date(s), all modalities
- Classifies viability in batches against the business profile
- Upserts every notice; summarizes and embeds the viable ones
- Records one sync run per date and removes notices older than 30 days
"""
import argparse
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from licitaradar.core.logging import setup_logging
from licitaradar.settings import settings
from licitaradar.sync_orchestrator import run_sync


def main():
    """Run the sync pipeline."""
    parser = argparse.ArgumentParser(description="Sincronização de licitações do PNCP")
    parser.add_argument(
        "--initial",
        action="store_true",
        help=f"Carga inicial dos últimos {settings.sync_initial_days} dias",
    )
    args = parser.parse_args()

    setup_logging(settings.log_level, settings.log_file)

    print("=" * 60)
    print("SINCRONIZAÇÃO PNCP")
    print("=" * 60)
    print()

    result = run_sync(initial_load=args.initial)

    print()
    print("=" * 60)
    print("RESUMO")
    print("=" * 60)
    print(f"  Modo:                  {result['mode']}")
    print(f"  Licitações buscadas:   {result['records_fetched']}")
    print(f"  Removidas (antigas):   {result['removed']}")
    for run in result["runs"]:
        print(f"  {run['run_date']}:  {run['status']}")
    print()

    return 0 if result["success"] else 1


if __name__ == "__main__":
    sys.exit(main())
