"""Generate one image or video from the command line.

Run with:
    python3 scripts/generate_media.py nanobanana-pro "a red fox in snow" -o fox.png
    python3 scripts/generate_media.py veo-3.1 "waves at dusk" --duration 8 -o waves.mp4

Asynchronous providers are polled to completion; progress is printed as it
is reported.
"""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

from mediaforge.errors import GenerationError
from mediaforge.schemas.generation import JobStatus, ReferenceInput, Strength, parse_request
from mediaforge.services.capability_registry import PROVIDER_REGISTRY
from mediaforge.services.generation import GenerationService
from mediaforge.services.job_lifecycle import wait_for_completion
from mediaforge.services.transport import close_http_client


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "provider",
        choices=[c.provider.value for c in PROVIDER_REGISTRY.list_providers()],
    )
    parser.add_argument("prompt")
    parser.add_argument("-o", "--output", required=True, help="File to write the media to")
    parser.add_argument("--aspect-ratio", default=None)
    parser.add_argument("--resolution", default=None)
    parser.add_argument("--duration", type=int, default=None)
    parser.add_argument(
        "--reference", action="append", default=[], metavar="PATH",
        help="Reference image (repeatable)",
    )
    parser.add_argument(
        "--strength", choices=[s.value for s in Strength], default=Strength.MEDIUM.value,
    )
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser


def _print_status(status: JobStatus) -> None:
    progress = "?" if status.progress is None else f"{status.progress}%"
    print(f"  {status.state.value} {progress}", flush=True)


async def run(args: argparse.Namespace) -> int:
    capability = PROVIDER_REGISTRY.get(args.provider)
    fields = {
        "prompt": args.prompt,
        "provider": capability.provider,
        "media_kind": capability.media_kind,
        "resolution": args.resolution,
        "duration": args.duration,
        "reference_inputs": [
            ReferenceInput.from_file(path, Strength(args.strength)) for path in args.reference
        ],
    }
    if args.aspect_ratio:
        fields["aspect_ratio"] = args.aspect_ratio

    service = GenerationService()
    try:
        request = parse_request(fields)
        outcome = await service.submit(request)
        if capability.is_async:
            print(f"Job started: {outcome.handle.job_id}")
            outcome = await wait_for_completion(outcome, on_status=_print_status)
        result = await service.materialize(outcome)
    except GenerationError as e:
        print(f"Generation failed ({type(e).__name__}): {e.message}", file=sys.stderr)
        return 1
    finally:
        await close_http_client()

    with open(args.output, "wb") as f:
        f.write(result.data)
    print(f"Wrote {len(result.data)} bytes ({result.mime_type}) to {args.output}")
    return 0


def main() -> None:
    args = build_parser().parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    sys.exit(asyncio.run(run(args)))


if __name__ == "__main__":
    main()
