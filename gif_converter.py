import os
import shutil
import logging
import subprocess
from dataclasses import dataclass, field
from typing import List, Optional

from PIL import Image, UnidentifiedImageError

from config import (
    DEFAULT_SCALE_WIDTH,
    FFMPEG_BIN,
    FFPROBE_BIN,
    GIF_FPS,
    SCALE_FLAGS,
    SCALE_TIERS,
    SUPPORTED_EXTENSIONS,
)
from filenames import output_filename, palette_filename


class ConversionError(Exception):
    def __init__(self, message, returncode=None):
        super().__init__(message)
        self.returncode = returncode


class UnsupportedFormatError(ConversionError):
    pass


class EngineNotFoundError(ConversionError):
    pass


@dataclass(frozen=True)
class ConversionRequest:
    input_path: str
    output_path: str
    palette_path: str
    output_dir: Optional[str] = None
    timestamp: bool = False


@dataclass
class BatchResult:
    converted: List[str] = field(default_factory=list)
    failed: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def is_supported(path: str) -> bool:
    return os.path.splitext(path)[1].lower() in SUPPORTED_EXTENSIONS


def select_scale_width(width: int) -> int:
    """Pick the GIF width for a probed source width (height follows aspect)"""
    for minimum, scale_width in SCALE_TIERS:
        if width >= minimum:
            return scale_width
    return DEFAULT_SCALE_WIDTH


def build_request(input_path: str, base: str, run_stamp: str,
                  output_dir: str = None, timestamp: bool = False) -> ConversionRequest:
    """Derive output and palette paths for one input.

    ``base`` may carry a directory part (single-file ``-o``); ``output_dir``
    puts the GIF in a given directory (batch mode).
    """
    name = output_filename(base, run_stamp if timestamp else None)
    output_path = os.path.join(output_dir, name) if output_dir else name
    return ConversionRequest(
        input_path=input_path,
        output_path=output_path,
        palette_path=palette_filename(output_path, run_stamp),
        output_dir=output_dir,
        timestamp=timestamp,
    )


def find_videos(directory: str) -> List[str]:
    """Supported files directly inside ``directory``, sorted by name"""
    videos = []
    for name in sorted(os.listdir(directory)):
        path = os.path.join(directory, name)
        if os.path.isfile(path) and is_supported(name):
            videos.append(path)
    return videos


class GifConverter:
    def __init__(self, ffmpeg_bin=FFMPEG_BIN, ffprobe_bin=FFPROBE_BIN, fps=GIF_FPS):
        self.ffmpeg_bin = ffmpeg_bin
        self.ffprobe_bin = ffprobe_bin
        self.fps = fps
        # Palettes written but not yet removed; read by the interrupt handler
        self.active_palettes = set()

    def check_engine(self):
        """Resolve ffmpeg/ffprobe on PATH or raise EngineNotFoundError"""
        resolved = {}
        for name in (self.ffmpeg_bin, self.ffprobe_bin):
            path = shutil.which(name)
            if path is None:
                raise EngineNotFoundError(f"{name} is required but was not found in PATH")
            resolved[name] = path
        self.ffmpeg_bin = resolved[self.ffmpeg_bin]
        self.ffprobe_bin = resolved[self.ffprobe_bin]
        logging.debug(f"Using ffmpeg={self.ffmpeg_bin} ffprobe={self.ffprobe_bin}")

    def _run(self, cmd, description, quiet=False, capture_stdout=False):
        logging.debug(f"{description}: {' '.join(cmd)}")
        output = subprocess.PIPE if quiet else None
        result = subprocess.run(
            cmd,
            stdout=subprocess.PIPE if capture_stdout else output,
            stderr=output,
            text=True,
            errors='replace',
        )
        if result.returncode != 0:
            if result.stderr:
                logging.debug(f"{description} stderr:\n{result.stderr.strip()}")
            raise ConversionError(
                f"{description} failed with exit code {result.returncode}",
                returncode=result.returncode,
            )
        return result

    def probe_width(self, input_path: str, quiet=False) -> int:
        """Width in pixels of the first video stream"""
        cmd = [
            self.ffprobe_bin,
            '-v', 'error',
            '-select_streams', 'v:0',
            '-show_entries', 'stream=width',
            '-of', 'csv=p=0',
            input_path,
        ]
        result = self._run(cmd, f"Probing {input_path}", quiet=quiet, capture_stdout=True)
        output = (result.stdout or '').strip().splitlines()
        try:
            return int(output[0].strip().rstrip(','))
        except (IndexError, ValueError):
            raise ConversionError(f"Could not read video width of {input_path}: {result.stdout!r}")

    def _filter_chain(self, scale_width: int) -> str:
        return f"fps={self.fps},scale={scale_width}:-1:flags={SCALE_FLAGS}"

    def generate_palette(self, input_path, palette_path, scale_width, quiet=False):
        cmd = [
            self.ffmpeg_bin, '-y',
            '-i', input_path,
            '-vf', f"{self._filter_chain(scale_width)},palettegen",
            palette_path,
        ]
        self.active_palettes.add(palette_path)
        self._run(cmd, "Palette generation", quiet=quiet)

    def encode_gif(self, input_path, palette_path, output_path, scale_width, quiet=False):
        cmd = [
            self.ffmpeg_bin, '-y',
            '-i', input_path,
            '-i', palette_path,
            '-lavfi', f"{self._filter_chain(scale_width)} [x]; [x][1:v] paletteuse",
            output_path,
        ]
        self._run(cmd, "GIF encoding", quiet=quiet)

    def remove_palette(self, palette_path):
        if os.path.exists(palette_path):
            os.remove(palette_path)
        self.active_palettes.discard(palette_path)

    def cleanup_palettes(self) -> List[str]:
        """Remove every palette still registered, return the removed paths"""
        removed = []
        for palette_path in sorted(self.active_palettes):
            try:
                if os.path.exists(palette_path):
                    os.remove(palette_path)
                    removed.append(palette_path)
            except OSError as e:
                logging.warning(f"Could not remove palette {palette_path}: {str(e)}")
        self.active_palettes.clear()
        return removed

    def describe_gif(self, path: str) -> Optional[dict]:
        """Dimensions and frame count of a written GIF, None if unreadable"""
        try:
            with Image.open(path) as image:
                return {
                    'width': image.width,
                    'height': image.height,
                    'frames': getattr(image, 'n_frames', 1),
                }
        except (OSError, UnidentifiedImageError) as e:
            logging.warning(f"Could not inspect {path}: {str(e)}")
            return None

    def convert_to_gif(self, input_path: str, palette_path: str, output_path: str,
                       quiet=False) -> str:
        if not is_supported(input_path):
            raise UnsupportedFormatError(
                f"Unsupported format: {input_path} "
                f"(supported: {', '.join(SUPPORTED_EXTENSIONS)})"
            )

        width = self.probe_width(input_path, quiet=quiet)
        scale_width = select_scale_width(width)
        logging.info(f"{input_path}: source width {width}px, scaling to {scale_width}px")

        try:
            self.generate_palette(input_path, palette_path, scale_width, quiet=quiet)
            self.encode_gif(input_path, palette_path, output_path, scale_width, quiet=quiet)
        finally:
            self.remove_palette(palette_path)

        info = self.describe_gif(output_path)
        if info:
            logging.info(f"{output_path}: {info['width']}x{info['height']}, {info['frames']} frames")
        return output_path

    def convert_request(self, request: ConversionRequest, quiet=False) -> str:
        return self.convert_to_gif(
            request.input_path, request.palette_path, request.output_path, quiet=quiet
        )

    def convert_directory(self, input_dir: str, output_dir: str, run_stamp: str,
                          timestamp=False) -> BatchResult:
        """Convert every supported file in ``input_dir`` one after another.

        Engine output is suppressed. A failing file is recorded and the scan
        carries on with the next one.
        """
        result = BatchResult()
        for input_path in find_videos(input_dir):
            base = os.path.splitext(os.path.basename(input_path))[0]
            request = build_request(input_path, base, run_stamp,
                                    output_dir=output_dir, timestamp=timestamp)
            print(f"Converting {input_path} -> {request.output_path}")
            try:
                self.convert_request(request, quiet=True)
            except ConversionError as e:
                logging.error(f"Conversion failed for {input_path}: {str(e)}")
                print(f"Failed: {input_path}")
                result.failed.append(input_path)
            else:
                result.converted.append(request.output_path)
        return result
