"""Data files bundled with rocq-setup (release manifest, workspace templates)."""
