import argparse
import asyncio
import sys

from loguru import logger

from app.core.config import get_settings
from app.services.extraction import available_backends
from app.services.ticket_service import ticket_out
from ingestion.errors import ImageValidationError
from ingestion.images import ImagePayload
from ingestion.service import build_orchestrator
from pipelines.ticket import TicketSession


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Read bet slip images into structured legs")
    parser.add_argument("images", nargs="+", metavar="IMAGE", help="Slip image, one per ticket leg")
    parser.add_argument(
        "--backend",
        default=None,
        choices=available_backends(),
        help="Extraction backend (defaults to EXTRACTION_BACKEND)",
    )
    parser.add_argument(
        "--mode",
        default=None,
        choices=("exclusive", "independent", "concurrent"),
        help="Coordinator mode for multi-leg tickets",
    )
    return parser.parse_args(argv)


async def _run(args: argparse.Namespace) -> str:
    settings = get_settings()
    if args.backend:
        settings = settings.model_copy(update={"extraction_backend": args.backend})

    images = [ImagePayload.from_path(path) for path in args.images]
    orchestrator = build_orchestrator(settings)
    session = TicketSession(len(args.images), orchestrator=orchestrator, mode=args.mode, settings=settings)
    try:
        await asyncio.gather(*(session.submit_leg(index, image) for index, image in enumerate(images)))
    finally:
        await orchestrator.backend.aclose()

    for slot in session.slots:
        if slot.last_error:
            logger.warning("Leg {} ({}) failed: {}", slot.index, args.images[slot.index], slot.last_error)
    return ticket_out("cli", session).model_dump_json(indent=2)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        output = asyncio.run(_run(args))
    except (ImageValidationError, OSError) as exc:
        logger.error("Cannot read slip image: {}", exc)
        return 2
    print(output)
    return 0


if __name__ == "__main__":
    sys.exit(main())
