"""Module entrypoint for `python -m tunnelui`."""

from __future__ import annotations

from tunnelui.cli import main_entry

if __name__ == "__main__":
    main_entry()
