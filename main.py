"""Command-line entry point: stream a FairyTales story into the terminal.

Usage::

    python main.py --name "The Brave Fox" --idea "A fox learns to swim" \
        --style Adventure --language en --length 2 --hero "Rusty"
    python main.py --recover
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import logging
import signal
import sys

from config.settings import get_settings
from models.story import GenerationRequest, HeroRef, StoryStyle
from services.api_client import get_api_client
from services.story_service import StorySnapshot, StoryService

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Generate a fairy tale with live streaming")
    parser.add_argument("--name", help="Story title")
    parser.add_argument("--idea", help="What the story is about")
    parser.add_argument(
        "--style", default=StoryStyle.ADVENTURE.value,
        choices=[s.value for s in StoryStyle],
    )
    parser.add_argument("--language", default="en")
    parser.add_argument("--length", type=int, default=1, help="Length tier (1 = short)")
    parser.add_argument("--hero", action="append", default=[], help="Hero name (repeatable)")
    parser.add_argument("--recover", action="store_true", help="Print the story stashed by an interrupted run")
    return parser


class TerminalPrinter:
    """Writes the newly revealed part of the story as it grows."""

    def __init__(self) -> None:
        self._shown = 0

    def __call__(self, snapshot: StorySnapshot) -> None:
        text = snapshot.visible_text
        if len(text) < self._shown:
            self._shown = 0
        if len(text) > self._shown:
            sys.stdout.write(text[self._shown:])
            sys.stdout.flush()
            self._shown = len(text)


def report_outcome(snapshot: StorySnapshot) -> int:
    """Print the final outcome and return the process exit code."""
    if not snapshot.state.is_terminal:
        print(f"Generation did not finish (state: {snapshot.state.value})", file=sys.stderr)
        return 1
    if snapshot.is_cancelled:
        print("Generation cancelled.", file=sys.stderr)
        return 130
    if snapshot.is_failed:
        print(f"Generation failed: {snapshot.error}", file=sys.stderr)
        return 1
    print(f"[{snapshot.progress}] story_id={snapshot.story_id or '-'}", file=sys.stderr)
    return 0


async def run(args: argparse.Namespace) -> int:
    service = StoryService()

    if args.recover:
        text = await service.recover_last_story()
        print(text if text else "Nothing to recover.")
        return 0 if text else 1

    if not args.name or not args.idea:
        print("--name and --idea are required", file=sys.stderr)
        return 2

    request = GenerationRequest(
        story_name=args.name,
        story_idea=args.idea,
        story_style=args.style,
        language=args.language,
        story_length=args.length,
        heroes=tuple(HeroRef(name=name) for name in args.hero),
    )

    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, service.cancel)

    service.subscribe(TerminalPrinter())
    service.start_generation(request)
    try:
        snapshot = await service.wait_until_done()
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)
        if not service.snapshot().is_completed:
            await service.handle_app_will_terminate()
        await get_api_client().close()

    print()
    return report_outcome(snapshot)


def main() -> None:
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )
    args = build_parser().parse_args()
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
