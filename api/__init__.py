"""Web front-end for the dead man's switch."""
