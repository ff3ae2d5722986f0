import argparse
import asyncio
import logging
import sys
from pathlib import Path

from pydantic import ValidationError
from tqdm import tqdm

from .config import resolve_config
from .errors import JumpcutError, ToolInvocationError, describe_error
from .media_tool import MediaToolGateway
from .pipeline import SilenceRemovalPipeline
from .renderer import output_name_for, unique_output_name


def _overrides_from_args(args) -> dict:
    """Map CLI flags onto the nested config shape, skipping unset ones."""
    mapping = {
        "noise_floor": ("detection", "noise_floor_db"),
        "min_silence": ("detection", "min_silence_s"),
        "open_silence": ("detection", "open_silence"),
        "pre_buffer": ("planning", "pre_buffer_s"),
        "post_buffer": ("planning", "post_buffer_s"),
        "min_keep": ("planning", "min_keep_s"),
        "fade": ("rendering", "fade_s"),
        "crf": ("rendering", "crf"),
        "preset": ("rendering", "preset"),
        "log_level": ("logging", "level"),
    }
    overrides: dict = {}
    for attr, (section, key) in mapping.items():
        value = getattr(args, attr, None)
        if value is not None:
            overrides.setdefault(section, {})[key] = value
    return overrides


async def _process_files(pipeline: SilenceRemovalPipeline, inputs, output_dir: Path) -> int:
    failures = 0
    produced = set()
    for input_path in tqdm(inputs, desc="Removing silences", unit="file"):
        # Earlier runs may be overwritten, outputs of this run may not
        output_name = output_name_for(input_path.name)
        if output_name in produced:
            output_name = unique_output_name(input_path.name, output_dir, produced)
        produced.add(output_name)
        try:
            outcome = await pipeline.render(input_path, output_dir, output_name=output_name)
        except JumpcutError as e:
            failures += 1
            tqdm.write(f"❌ {input_path.name}: {describe_error(e)}")
            continue
        tqdm.write(
            f"✅ {outcome.output_name}: kept {outcome.kept_duration_s:.2f}s "
            f"of {outcome.source_duration_s:.2f}s ({len(outcome.silences)} silences)"
        )
    return failures


def _run_process(args, config) -> None:
    inputs = [Path(p) for p in args.input]
    missing = [p for p in inputs if not p.is_file()]
    if missing:
        for p in missing:
            print(f"❌ Input not found: {p}")
        sys.exit(1)

    output_dir = Path(args.output)
    output_dir.mkdir(parents=True, exist_ok=True)

    pipeline = SilenceRemovalPipeline(config)
    failures = asyncio.run(_process_files(pipeline, inputs, output_dir))

    print(f"\nProcessed {len(inputs) - failures}/{len(inputs)} file(s) into {output_dir}")
    if failures:
        sys.exit(1)


def _run_check(config) -> None:
    print("Checking dependencies...")
    gateway = MediaToolGateway.from_config(config.media)
    try:
        version = asyncio.run(gateway.version())
    except ToolInvocationError as e:
        print(f"❌ ffmpeg NOT available: {e}")
        sys.exit(1)
    print(f"✅ ffmpeg found: {version}")


def _run_serve(args, config) -> None:
    import uvicorn

    from .api.main import create_app

    uvicorn.run(create_app(config), host=args.host, port=args.port)


def main():
    parser = argparse.ArgumentParser(
        prog="jumpcut", description="Remove silent stretches from audio and video"
    )
    parser.add_argument(
        "--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"], help="Override log level"
    )
    subparsers = parser.add_subparsers(dest="command", help="Subcommands")

    # SERVE
    serve_parser = subparsers.add_parser("serve", help="Run the HTTP upload service")
    serve_parser.add_argument("--host", type=str, default="127.0.0.1", help="Bind address")
    serve_parser.add_argument("--port", type=int, default=8000, help="Bind port")

    # PROCESS (local files, no queue)
    process_parser = subparsers.add_parser("process", help="Remove silences from local files")
    process_parser.add_argument(
        "--input", "-i", type=str, nargs="+", required=True, help="Input media file(s)"
    )
    process_parser.add_argument(
        "--output", "-o", type=str, default="output", help="Output directory"
    )
    process_parser.add_argument("--noise-floor", type=float, help="Silence threshold in dB")
    process_parser.add_argument("--min-silence", type=float, help="Minimum silence length (s)")
    process_parser.add_argument(
        "--open-silence",
        choices=["cut_to_end", "keep"],
        help="What to do with silence still open at end of media",
    )
    process_parser.add_argument("--pre-buffer", type=float, help="Padding before speech (s)")
    process_parser.add_argument("--post-buffer", type=float, help="Padding after speech (s)")
    process_parser.add_argument("--min-keep", type=float, help="Drop keeps shorter than this (s)")
    process_parser.add_argument("--fade", type=float, help="Fade at each cut (s), 0 disables")
    process_parser.add_argument("--crf", type=int, help="Video quality (lower = better)")
    process_parser.add_argument(
        "--preset",
        choices=["ultrafast", "superfast", "veryfast", "faster", "fast", "medium", "slow"],
        help="Encoding speed preset",
    )

    # CHECK FFMPEG
    subparsers.add_parser("check", help="Verify dependencies")

    args = parser.parse_args()

    if args.command is None:
        parser.print_help()
        return

    try:
        config = resolve_config(_overrides_from_args(args))
    except ValidationError as e:
        print(f"❌ Invalid configuration:\n{e}")
        sys.exit(2)

    logging.basicConfig(
        level=config.logging.level,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )

    if args.command == "serve":
        _run_serve(args, config)

    elif args.command == "process":
        _run_process(args, config)

    elif args.command == "check":
        _run_check(config)


if __name__ == "__main__":
    main()
