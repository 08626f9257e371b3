"""
Media and staging constants.

Centralized definitions of staged file roles, extensions and content types.
"""

# Staged file roles and the fixed extension each one gets on disk
ROLE_INPUT = 'input'
ROLE_OUTPUT = 'output'

INPUT_EXTENSION = '.mp4'
OUTPUT_EXTENSION = '.mp3'

# Declared MIME types must start with this to pass admission
VIDEO_MIME_PREFIX = 'video/'

# Fallback when Telegram sends a video message without a mime_type
DEFAULT_VIDEO_MIME = 'video/mp4'

# Video-specific file extensions, used to guess a MIME hint for local files
VIDEO_EXTENSIONS = ['.mp4', '.webm', '.mkv', '.avi', '.mov', '.m4v', '.3gp']

# Job ids become part of file names; '_' is reserved as the role separator
JOB_ID_PATTERN = r'^[A-Za-z0-9-]+$'

NANOID_ALPHABET = 'ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789'
NANOID_SIZE = 21

DOWNLOAD_CHUNK_SIZE = 64 * 1024
