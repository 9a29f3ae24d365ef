"""
Command line entry point for imports, refetches and retries

Examples:
    python scripts/run_import.py batch opensea 0xabc:42 0xabc:43
    python scripts/run_import.py batch metadata_url --metadata-url ipfs://Qm.../meta.json
    python scripts/run_import.py wallet objkt tz1... --kind created
    python scripts/run_import.py refetch 17
    python scripts/run_import.py retry --max-attempts 5
"""

import argparse
import asyncio
import json
import sys
import os
import logging

# Add current directory to path to allow imports from core, models, etc.
sys.path.append(os.getcwd())

from core.context import PipelineContext
from core.exceptions import IngestionException
from core.logging import setup_logging
from ingestion.runner import BatchResult, ImportOrchestrator
from models.base import DataSource, IndexType
from schemas.sources import RawRef

logger = logging.getLogger(__name__)


def parse_ref(value: str) -> RawRef:
    """``contract:token`` -> RawRef"""
    contract, sep, token = value.rpartition(":")
    if not sep or not contract or not token:
        raise argparse.ArgumentTypeError(f"Expected contract:token, got {value!r}")
    return RawRef(contract_address=contract, token_id=token)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="NFT metadata import")
    commands = parser.add_subparsers(dest="command", required=True)

    sources = [s.value for s in DataSource]

    batch = commands.add_parser("batch", help="Import NFTs by reference")
    batch.add_argument("source", choices=sources)
    batch.add_argument("refs", nargs="*", type=parse_ref, help="contract:token pairs")
    batch.add_argument("--metadata-url", action="append", default=[], help="Import straight from a metadata URL")
    batch.add_argument("--blockchain", default=None)

    wallet = commands.add_parser("wallet", help="Import a wallet's created or owned NFTs")
    wallet.add_argument("source", choices=sources)
    wallet.add_argument("wallet")
    wallet.add_argument("--kind", choices=[k.value for k in IndexType], default=IndexType.OWNED.value)
    wallet.add_argument("--max-items", type=int, default=None)

    refetch = commands.add_parser("refetch", help="Refetch one artwork and merge new fields")
    refetch.add_argument("artwork_id", type=int)

    retry = commands.add_parser("retry", help="Retry failed imports")
    retry.add_argument("ids", nargs="*", type=int, help="Record ids; all retryable records when omitted")
    retry.add_argument("--max-attempts", type=int, default=None)
    retry.add_argument("--limit", type=int, default=100)

    return parser


def report(result: BatchResult):
    logger.info(f"Import completed: Succeeded={len(result.succeeded)}, Failed={len(result.failed)}")
    for detail in result.error_details:
        logger.warning(json.dumps(detail))


async def run(args) -> int:
    context = PipelineContext.from_settings()
    orchestrator = ImportOrchestrator(context)

    try:
        if args.command == "batch":
            refs = list(args.refs)
            refs.extend(RawRef(metadata_url=url) for url in args.metadata_url)
            if args.blockchain:
                refs = [ref.model_copy(update={"blockchain": args.blockchain}) for ref in refs]
            if not refs:
                logger.warning("Nothing to import. Skipping.")
                return 0
            result = await orchestrator.import_batch(args.source, refs)
            report(result)
            return 1 if result.failed and not result.succeeded else 0

        if args.command == "wallet":
            result = await orchestrator.import_wallet(
                args.source, args.wallet, kind=IndexType(args.kind), max_items=args.max_items
            )
            report(result)
            return 0

        if args.command == "refetch":
            result = await orchestrator.refetch_artwork(args.artwork_id)
            logger.info(f"Artwork {args.artwork_id}: {result.message} {result.updated_fields or ''}")
            return 0

        if args.ids:
            result = await orchestrator.retry_records(args.ids)
        else:
            result = await orchestrator.retry_failed(max_attempts=args.max_attempts, limit=args.limit)
        report(result)
        return 0

    except IngestionException as e:
        logger.error(f"Import pipeline error: {e}")
        return 1
    except NotImplementedError as e:
        logger.error(str(e))
        return 2
    finally:
        await context.aclose()


if __name__ == "__main__":
    setup_logging()
    sys.exit(asyncio.run(run(build_parser().parse_args())))
