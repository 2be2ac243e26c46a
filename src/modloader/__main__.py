"""CLI entry point: run `modloader app.pym` or `python -m modloader app.pym`."""

import sys
from pathlib import Path


def main() -> int:
    import argparse
    import asyncio
    import logging
    from .loader import Loader, LoaderOptions
    from .shared.errors import LoaderError

    parser = argparse.ArgumentParser(prog="modloader", description="Load and run a module (.pym) file.")
    parser.add_argument("file", type=Path, help="Path to the module or script to run")
    parser.add_argument("--script", action="store_true", help="Run the file as a script and print its value")
    parser.add_argument("--base-url", default=None, help="Base URL for locating modules (default: the file's directory)")
    parser.add_argument("--source-maps", action="store_true", help="Record source maps while compiling")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log loader activity")
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    path = args.file.resolve()
    if not path.exists():
        sys.stderr.write(f"modloader: error: file not found: {path}\n")
        return 1
    if not path.is_file():
        sys.stderr.write(f"modloader: error: not a file: {path}\n")
        return 1

    overrides = {"base_url": args.base_url or str(path.parent)}
    if args.source_maps:
        overrides["source_maps"] = True
    loader = Loader(options=LoaderOptions.from_env(**overrides))

    name = path.stem if path.suffix == loader.options.default_extension else path.name
    try:
        if args.script:
            value = asyncio.run(loader.load_as_script(name))
            if value is not None:
                print(repr(value))
        else:
            namespace = asyncio.run(loader.import_module(name))
            for key in namespace:
                print(f"{key} = {namespace[key]!r}")
    except LoaderError:
        # Already reported to stderr by the loader
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
