"""
Module entry point for: python -m labrecord

Allows running the engine directly as a module:
    python -m labrecord extract <pdf_path> [options]
    python -m labrecord paginate <image_path> [options]
    python -m labrecord serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
