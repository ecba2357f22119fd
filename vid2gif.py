import os
import sys
import glob
import signal
import logging
import argparse

from config import DEFAULT_OUTPUT_BASENAME, VERSION, setup_logging
from filenames import palette_glob, timestamp_string
from gif_converter import (
    ConversionError,
    EngineNotFoundError,
    GifConverter,
    build_request,
    is_supported,
)


class Interrupted(Exception):
    """Raised from the signal handler to unwind the current conversion"""


class UsageParser(argparse.ArgumentParser):
    def error(self, message):
        self.print_usage(sys.stderr)
        self.exit(1, f"{self.prog}: error: {message}\n")


def build_parser():
    parser = UsageParser(
        prog='vid2gif',
        description='Convert videos to optimized GIFs with a two-pass ffmpeg palette',
    )
    parser.add_argument('-i', dest='input', metavar='FILE', help='Input video file')
    parser.add_argument('-o', dest='output', metavar='BASENAME',
                        help=f'Output GIF base name (default: {DEFAULT_OUTPUT_BASENAME})')
    parser.add_argument('-d', dest='directory', metavar='DIR',
                        help='Convert every supported video directly inside DIR')
    parser.add_argument('-k', dest='output_dir', metavar='DIR',
                        help='Output directory for -d (default: the input directory)')
    parser.add_argument('-t', dest='timestamp', action='store_true',
                        help='Append a _YYYYMMDD_HHMMSS timestamp to output names')
    parser.add_argument('-v', '--version', action='version', version=f'%(prog)s {VERSION}')
    return parser


def validate_args(parser, args):
    if args.input and args.directory:
        parser.error("-i and -d cannot be used together")
    if not args.input and not args.directory:
        parser.error("one of -i FILE or -d DIR is required")
    if args.directory and args.output:
        parser.error("-o only applies to single-file mode (-i)")
    if args.input and args.output_dir:
        parser.error("-k only applies to directory mode (-d)")
    if args.output is not None and not os.path.basename(args.output):
        parser.error(f"-o needs a file name, not a directory: {args.output!r}")


def fail(message):
    print(f"Error: {message}", file=sys.stderr)
    return 1


def writable_dir(path):
    return os.path.isdir(path) and os.access(path, os.W_OK)


def install_signal_handlers():
    def handler(signum, frame):
        raise Interrupted(signal.Signals(signum).name)

    previous = {}
    for name in ('SIGINT', 'SIGTERM', 'SIGHUP'):
        signum = getattr(signal, name, None)
        if signum is not None:
            previous[signum] = signal.signal(signum, handler)
    return previous


def restore_signal_handlers(previous):
    for signum, handler in previous.items():
        signal.signal(signum, handler)


def ignore_signals(previous):
    for signum in previous:
        signal.signal(signum, signal.SIG_IGN)


def cleanup_scratch(converter, run_stamp, directories):
    """Remove this run's palette files from the converter and ``directories``"""
    removed = converter.cleanup_palettes()
    pattern = palette_glob(run_stamp)
    for directory in dict.fromkeys(os.path.abspath(d) for d in directories):
        for path in glob.glob(os.path.join(directory, pattern)):
            try:
                os.remove(path)
                removed.append(path)
            except OSError as e:
                logging.warning(f"Could not remove palette {path}: {str(e)}")
    return removed


def run_single(converter, args, run_stamp):
    if not os.path.isfile(args.input):
        return fail(f"input file not found: {args.input}")
    if not is_supported(args.input):
        return fail(f"unsupported format: {args.input}")

    base = args.output or DEFAULT_OUTPUT_BASENAME
    output_dir = os.path.dirname(base) or os.curdir
    if not writable_dir(output_dir):
        return fail(f"output directory is missing or not writable: {output_dir}")

    converter.check_engine()
    request = build_request(args.input, base, run_stamp, timestamp=args.timestamp)
    print(f"Converting {request.input_path} -> {request.output_path}")
    try:
        output_path = converter.convert_request(request)
    except ConversionError as e:
        return fail(str(e))
    print(f"GIF created successfully at: {output_path}")
    return 0


def run_batch(converter, args, run_stamp):
    if not os.path.isdir(args.directory):
        return fail(f"input directory not found: {args.directory}")
    if not os.access(args.directory, os.R_OK | os.X_OK):
        return fail(f"input directory is not readable: {args.directory}")
    output_dir = args.output_dir or args.directory
    if not writable_dir(output_dir):
        return fail(f"output directory is missing or not writable: {output_dir}")

    converter.check_engine()
    result = converter.convert_directory(args.directory, output_dir, run_stamp,
                                         timestamp=args.timestamp)
    if not result.converted and not result.failed:
        logging.warning(f"No supported video files in {args.directory}")
        print(f"No supported video files found in {args.directory}")
        return 0
    if not result.ok:
        print(f"Failed to convert {len(result.failed)} file(s):", file=sys.stderr)
        for path in result.failed:
            print(f"  {path}", file=sys.stderr)
        return 1
    print(f"Converted {len(result.converted)} file(s) into {output_dir}")
    return 0


def main(argv=None):
    setup_logging()
    parser = build_parser()
    args = parser.parse_args(argv)
    validate_args(parser, args)

    run_stamp = timestamp_string()
    converter = GifConverter()
    scratch_dirs = [os.curdir]
    if args.directory:
        scratch_dirs.append(args.output_dir or args.directory)
    elif args.output:
        scratch_dirs.append(os.path.dirname(args.output) or os.curdir)

    previous = install_signal_handlers()
    try:
        if args.input:
            return run_single(converter, args, run_stamp)
        return run_batch(converter, args, run_stamp)
    except EngineNotFoundError as e:
        return fail(str(e))
    except (Interrupted, KeyboardInterrupt) as e:
        ignore_signals(previous)
        removed = cleanup_scratch(converter, run_stamp, scratch_dirs)
        logging.warning(f"Interrupted ({str(e) or 'SIGINT'}), removed {len(removed)} palette file(s)")
        print("\nInterrupted, temporary palette files removed.", file=sys.stderr)
        return 1
    finally:
        restore_signal_handlers(previous)


if __name__ == "__main__":
    sys.exit(main())
