"""PTY supervisor that restarts the child when it asks for an image."""
