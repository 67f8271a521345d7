"""wp-md-sync: WordPress content as Markdown files, synced both ways."""

__version__ = "1.0.0"
