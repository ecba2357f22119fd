import os
import logging

VERSION = "1.0.0"

# Container formats accepted as input (compared lower-case)
SUPPORTED_EXTENSIONS = (
    '.mp4', '.mov', '.avi', '.mkv', '.webm',
    '.flv', '.wmv', '.m4v', '.mpg', '.mpeg',
)

GIF_EXTENSION = '.gif'
PALETTE_EXTENSION = '.png'
DEFAULT_OUTPUT_BASENAME = 'output'
TIMESTAMP_FORMAT = '%Y%m%d_%H%M%S'

GIF_FPS = 15
SCALE_FLAGS = 'lanczos'

# (minimum probed width, output width), checked top to bottom
SCALE_TIERS = (
    (1200, 1024),
    (900, 960),
)
DEFAULT_SCALE_WIDTH = 640

FFMPEG_BIN = os.environ.get('VID2GIF_FFMPEG', 'ffmpeg')
FFPROBE_BIN = os.environ.get('VID2GIF_FFPROBE', 'ffprobe')

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(message)s'


def setup_logging():
    """Configure the root logger from VID2GIF_LOG_LEVEL / VID2GIF_LOG_FILE"""
    level_name = os.environ.get('VID2GIF_LOG_LEVEL', 'WARNING').upper()
    level = getattr(logging, level_name, logging.WARNING)
    log_file = os.environ.get('VID2GIF_LOG_FILE')
    if log_file:
        logging.basicConfig(filename=log_file, level=level, format=LOG_FORMAT)
    else:
        logging.basicConfig(level=level, format=LOG_FORMAT)
    logging.debug(f"Logging configured at {logging.getLevelName(level)}")
