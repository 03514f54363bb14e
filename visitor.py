"""Talk to the art expert about one artwork from a terminal.

Resolves the artwork through the record API, then opens a realtime voice
session over aiortc using the local microphone. Lifecycle changes and the
diagnostic trace are printed as they happen; the model's transcript is
streamed to stdout. Press Ctrl+C to hang up.

Run: set `ART_API_URL` (and optionally the VAD / model variables described in
      `utils.settings`) and run `python visitor.py --slug starry-night`.
"""
import argparse
import asyncio
import logging
import sys

import httpx
from dotenv import load_dotenv

from models.session_models import SessionState
from services.image_encoder import ImageEncoder
from services.realtime.aiortc_transport import AiortcPeerTransport, MicrophoneSource, RecorderPlayback
from services.realtime.clients import HttpContextResolver, HttpCredentialBroker, HttpImageSource, RealtimeNegotiator
from services.realtime.control_events import TranscriptDelta
from services.realtime.image_injection import ImageInjector
from services.realtime.orchestrator import SessionOrchestrator
from utils.settings import RealtimeSettings


def _parse_args(argv):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    target = parser.add_mutually_exclusive_group(required=True)
    target.add_argument("--id", dest="artwork_id", help="Artwork record id")
    target.add_argument("--slug", help="Artwork short-name")
    parser.add_argument("--mic", default="default", help="FFmpeg capture device")
    parser.add_argument("--mic-format", default="pulse", help="FFmpeg capture format")
    parser.add_argument("--speaker", default=None, help="FFmpeg playback target (omit to discard audio)")
    parser.add_argument("--speaker-format", default=None, help="FFmpeg playback format")
    parser.add_argument("--stun", action="append", default=[], help="STUN/TURN URL (repeatable)")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def _print_transcript(event) -> None:
    if isinstance(event, TranscriptDelta):
        print(event.delta, end="", flush=True)


async def run(args) -> int:
    settings = RealtimeSettings.from_env()
    async with httpx.AsyncClient(timeout=settings.http_timeout) as http:
        orchestrator = SessionOrchestrator(
            resolver=HttpContextResolver(http, settings.api_base_url),
            broker=HttpCredentialBroker(http, settings.api_base_url),
            negotiator=RealtimeNegotiator(http, settings.realtime_url, settings.model),
            media=MicrophoneSource(args.mic, format=args.mic_format),
            transport_factory=lambda: AiortcPeerTransport(ice_servers=args.stun),
            image_injector=ImageInjector(
                HttpImageSource(http),
                ImageEncoder(max_size=(settings.image_max_size, settings.image_max_size)),
            ),
            playback=RecorderPlayback(args.speaker, format=args.speaker_format),
            settings=settings,
        )
        orchestrator.trace.subscribe(lambda entry: print(entry.render(), file=sys.stderr))
        orchestrator.add_event_listener(_print_transcript)

        context = await orchestrator.activate(identifier=args.artwork_id, short_name=args.slug)
        if context is None:
            print(f"Error: {orchestrator.error_message}", file=sys.stderr)
            return 1

        print(f"{context.title}\n{context.description}\n", file=sys.stderr)
        try:
            if not await orchestrator.start_conversation():
                print(f"Error: {orchestrator.error_message or 'could not connect'}", file=sys.stderr)
                return 1
            print("Connected. Speak now.", file=sys.stderr)
            while orchestrator.state is SessionState.CONNECTED:
                await asyncio.sleep(0.5)
        finally:
            await orchestrator.teardown()
    return 0


def main(argv=None) -> int:
    load_dotenv()
    args = _parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    try:
        return asyncio.run(run(args))
    except KeyboardInterrupt:
        return 0


if __name__ == "__main__":
    sys.exit(main())
