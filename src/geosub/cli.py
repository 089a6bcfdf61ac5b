# src/geosub/cli.py

import argparse
import logging
import sys
from typing import Callable, List, Optional

from .config import EngineConfig, load_config_file, parse_band_list, parse_window
from .exceptions import RequestValidationError, RetrievalError
from .retrieve import RetrievalRequest, retrieve_sync

USAGE = "geosub [-b band1,band2...] [-w left,top,right,bottom] [-j file] [-v] [-q] url destination"

def setup_logging(level: int = logging.WARNING) -> None:
    """
    Configures the standard logging format and level for the command-line interface.

    Args:
        level (int): The logging threshold level.
    """
    logging.basicConfig(
        level=level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

class ArgumentParser(argparse.ArgumentParser):
    """Reports usage errors as RequestValidationError instead of exiting with status 2."""
    def error(self, message: str):
        raise RequestValidationError(message)

def _attach_window(argv: List[str]) -> List[str]:
    """
    Attach the value of -w to the flag itself.

    Windows west of Greenwich start with a minus sign, which argparse would
    otherwise read as an option.
    """
    args = []
    items = iter(argv)
    for item in items:
        value = next(items, None) if item == "-w" else None
        args.append(item if value is None else f"-w={value}")
    return args

def build_parser() -> argparse.ArgumentParser:
    parser = ArgumentParser(
        prog="geosub",
        description="Retrieve a subset (bands and/or window) of a raster dataset",
        usage=USAGE
    )
    parser.add_argument("source", nargs="?", help="URL or path of the source dataset.")
    parser.add_argument("destination", nargs="?", help="Output file, its extension selects the format.")
    parser.add_argument(
        "-b",
        dest="bands",
        metavar="<bands>",
        help="bands to extract, comma-separated list of strings and/or numbers"
    )
    parser.add_argument(
        "-w",
        dest="window",
        metavar="<win>",
        help=(
            "window to extract, comma-separated list of WGS84 coordinates in left, top, right, "
            "bottom order"
        )
    )
    parser.add_argument("-j", dest="config", metavar="<file>", help="read configuration from a JSON file")
    parser.add_argument("-v", dest="verbose", action="store_true", help="verbose output")
    parser.add_argument("-q", dest="quiet", action="store_true", help="suppress all output")
    return parser

def _verbose_sink(quiet: bool, verbose: bool) -> Callable[[str], None]:
    if quiet:
        return lambda message: None
    if verbose:
        return lambda message: print(message, flush=True)
    return lambda message: print(".", end="", flush=True)

def _fail(error: Exception, quiet: bool) -> int:
    if not quiet:
        message = str(error) if isinstance(error, RetrievalError) else f"{type(error).__name__}: {error}"
        print(message, file=sys.stderr)
        print("Usage:")
        print(USAGE)
    return 1

def main(argv: Optional[List[str]] = None) -> int:
    """
    Parses command-line arguments and runs the retrieval.

    Returns:
        int: The process exit code (0 on success, 1 on any failure).
    """
    argv = sys.argv[1:] if argv is None else list(argv)

    try:
        args = build_parser().parse_args(_attach_window(argv))
    except RequestValidationError as e:
        return _fail(e, "-q" in argv)

    if args.quiet:
        setup_logging(logging.CRITICAL)
    elif args.verbose:
        setup_logging(logging.DEBUG)
    else:
        setup_logging()

    try:
        bands, bbox = None, None
        if args.config:
            conf = load_config_file(args.config)
            bands, bbox = conf.bands, conf.bbox
        if args.bands:
            bands = parse_band_list(args.bands)
        if args.window:
            bbox = parse_window(args.window)

        retrieve_sync(RetrievalRequest(
            source=args.source,
            output=args.destination,
            band_selectors=bands,
            bbox=bbox,
            verbose=_verbose_sink(args.quiet, args.verbose),
            config=EngineConfig()
        ))
    except Exception as e:
        logging.debug("Retrieval failed", exc_info=True)
        return _fail(e, args.quiet)

    if not args.quiet:
        print()
    return 0

if __name__ == "__main__":
    sys.exit(main())
