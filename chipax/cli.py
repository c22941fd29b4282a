"""Command line entry point: run, assemble, disassemble and record ROMs."""

import argparse
import os
import tempfile

os.environ.setdefault("PYGAME_HIDE_SUPPORT_PROMPT", "1")

from chipax.state import Quirks, create_state
from chipax.emulator import load_rom
from chipax.errors import RomLoadError, AssemblerError
from chipax.assembler import assemble
from chipax.disassembler import disassemble_program
from chipax.logging import ConsoleLogger, LEVELS
from chipax.constants import PROGRAM_START

QUIRK_PRESETS = {
    "original": Quirks.original,
    "modern": Quirks.modern,
}
COLOR_SCHEMES = ["white", "classic", "amber", "blue", "retro"]
SHEET_FRAMES = 16


def _address(text: str) -> int:
    """Parse a decimal or 0x-prefixed address."""
    value = int(text, 0)
    if not 0 <= value <= 0xFFF:
        raise argparse.ArgumentTypeError(f"address {text} is outside 0x000-0xFFF")
    return value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chipax", description="CHIP-8 emulator, assembler and disassembler"
    )
    parser.add_argument(
        "--log_level",
        type=str.upper,
        choices=list(LEVELS),
        default="INFO",
        help="Console log level (default: INFO)",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Play a ROM in a window")
    run.add_argument("rom", help="ROM file to load")
    run.add_argument("--ipf", type=int, default=10, help="Instructions per frame (default: 10)")
    run.add_argument("--scale", type=int, default=10, help="Window scale factor (default: 10)")
    run.add_argument("--quirks", choices=sorted(QUIRK_PRESETS), default="original",
                     help="Interpreter behaviour preset (default: original)")
    run.add_argument("--color-scheme", choices=COLOR_SCHEMES, default="white", help="Display colours (default: white)")
    run.add_argument("--load-address", type=_address, default=PROGRAM_START,
                     help="Address the ROM is loaded at (default: 0x200)")
    run.add_argument("--mute", action="store_true", help="Disable sound")

    asm = subparsers.add_parser("assemble", help="Assemble source into a ROM")
    asm.add_argument("source", help="Assembly source file")
    asm.add_argument("-o", "--output", required=True, help="ROM file to write")
    asm.add_argument("--base", type=_address, default=PROGRAM_START,
                     help="Load address labels resolve against (default: 0x200)")

    dis = subparsers.add_parser("disasm", help="Print a ROM listing")
    dis.add_argument("rom", help="ROM file to disassemble")
    dis.add_argument("--base", type=_address, default=PROGRAM_START,
                     help="Address of the first byte (default: 0x200)")

    rec = subparsers.add_parser("record", help="Run a ROM headless and save an MP4")
    rec.add_argument("rom", help="ROM file to load")
    rec.add_argument("output", help="MP4 file to write")
    rec.add_argument("--frames", type=int, default=600, help="Frames to record (default: 600)")
    rec.add_argument("--ipf", type=int, default=10, help="Instructions per frame (default: 10)")
    rec.add_argument("--quirks", choices=sorted(QUIRK_PRESETS), default="original",
                     help="Interpreter behaviour preset (default: original)")
    rec.add_argument("--color-scheme", choices=COLOR_SCHEMES, default="white", help="Display colours (default: white)")
    rec.add_argument("--scale", type=int, default=8, help="Video scale factor (default: 8)")
    rec.add_argument("--sheet", help="Also save a PNG grid of evenly spaced frames")

    return parser


def cmd_run(args, logger: ConsoleLogger) -> int:
    from chipax.driver import run_emulator

    return run_emulator(
        args.rom,
        quirks=QUIRK_PRESETS[args.quirks](),
        instructions_per_frame=args.ipf,
        scale=args.scale,
        color_scheme=args.color_scheme,
        load_address=args.load_address,
        audio=not args.mute,
        logger=logger,
    )


def cmd_assemble(args, logger: ConsoleLogger) -> int:
    try:
        with open(args.source, "r") as f:
            source = f.read()
    except OSError as e:
        logger.error(f"Cannot read '{args.source}': {e.strerror or e}")
        return 1

    try:
        rom = assemble(source, args.base)
    except AssemblerError as e:
        logger.error(f"{args.source}: {e}")
        return 1

    # Write next to the target, then swap in, so a crash never leaves half a ROM
    directory = os.path.dirname(os.path.abspath(args.output))
    fd, tmp_path = tempfile.mkstemp(dir=directory, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(rom)
        os.replace(tmp_path, args.output)
    except OSError as e:
        if os.path.exists(tmp_path):
            os.unlink(tmp_path)
        logger.error(f"Cannot write '{args.output}': {e.strerror or e}")
        return 1

    logger.info(f"Wrote {len(rom)} bytes to {args.output}")
    return 0


def cmd_disasm(args, logger: ConsoleLogger) -> int:
    try:
        with open(args.rom, "rb") as f:
            data = f.read()
    except OSError as e:
        logger.error(str(RomLoadError(args.rom, e.strerror or str(e))))
        return 1

    for address, opcode, text in disassemble_program(data, args.base):
        print(f"{address:03X}: {opcode:04X}  {text}")
    return 0


def cmd_record(args, logger: ConsoleLogger) -> int:
    import cv2
    import numpy as np
    from chipax.runner import run_frames
    from chipax.rendering import batch_render, create_video

    try:
        state = load_rom(create_state(quirks=QUIRK_PRESETS[args.quirks]()), args.rom)
    except RomLoadError as e:
        logger.error(str(e))
        return 1

    _, displays = run_frames(state, args.frames, args.ipf, True)
    written = create_video(displays, args.output, scale=args.scale, color_scheme=args.color_scheme)
    logger.info(f"Recorded {written} frames to {args.output}")
    if args.sheet:
        picked = np.linspace(0, len(displays) - 1, min(len(displays), SHEET_FRAMES)).astype(int)
        sheet = batch_render(displays[picked], color_scheme=args.color_scheme)
        if not cv2.imwrite(args.sheet, cv2.cvtColor(sheet, cv2.COLOR_RGBA2BGRA)):
            logger.error(f"Cannot write '{args.sheet}'")
            return 1
        logger.info(f"Saved {len(picked)} frames to {args.sheet}")
    return 0


COMMANDS = {
    "run": cmd_run,
    "assemble": cmd_assemble,
    "disasm": cmd_disasm,
    "record": cmd_record,
}


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    logger = ConsoleLogger("Chipax", log_level=args.log_level)
    return COMMANDS[args.command](args, logger)


if __name__ == "__main__":
    raise SystemExit(main())
