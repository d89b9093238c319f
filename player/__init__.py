"""Audio playback: the session manager, the mpv engine and the terminal front end."""
