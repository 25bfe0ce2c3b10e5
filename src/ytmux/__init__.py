"""ytmux - yt-dlp and ffmpeg front end with binary self-updates."""

__version__ = "0.3.0"
