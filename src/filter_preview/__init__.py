"""Live filter preview and export pipeline built around an external ffmpeg binary."""
