"""
Module entry point for: python -m drmd

Allows running the engine directly as a module:
    python -m drmd convert 4.9 g
    python -m drmd normalize <extraction.json> [options]
    python -m drmd serve [options]
"""

from .cli import cli


def main():
    cli()


if __name__ == "__main__":
    main()
