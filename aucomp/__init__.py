"""aucomp: incremental audio mirror.

Mirrors a source folder into an output folder, converting audio files
through ffmpeg and re-encoding lyric files, and remembers what it did
so that later runs only touch files that changed.
"""

__version__ = "1.0.0"
__app_name__ = "aucomp"
