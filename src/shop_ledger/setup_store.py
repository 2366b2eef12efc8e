"""Utility for initializing a Shop Ledger data file.

The module doubles as a console script (``shop-ledger-init``) and as a
library used by tests. It can also write a starter ``config.ini`` so a new
shop can be bootstrapped from an empty directory.
"""

from __future__ import annotations

import argparse
import configparser
import sys
from pathlib import Path
from typing import Sequence

from . import data_manager
from .constants import DEFAULT_LOAN_INTEREST_RATE, DEFAULT_LOW_STOCK_THRESHOLD, EXPECTED_SCHEMA_VERSION

CONFIG_FILE = data_manager.CONFIG_FILE_NAME
DEFAULT_DATA_FILE = "shop_ledger_data.json"
DEFAULT_SHOP_NAME = "My Shop"


def write_config(
    config_path: Path,
    *,
    data_file: str = DEFAULT_DATA_FILE,
    shop_name: str = DEFAULT_SHOP_NAME,
    overwrite: bool = False,
) -> Path:
    """Write a starter ``config.ini`` at ``config_path``.

    Raises:
        FileExistsError: If the file exists and ``overwrite`` is ``False``.
    """

    config_path = config_path.expanduser().resolve()
    if config_path.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing configuration: {config_path}")

    parser = configparser.ConfigParser()
    parser.optionxform = str  # keep the CamelCase option names readable
    parser["System"] = {
        "DataFile": data_file,
        "ShopName": shop_name,
        "SchemaVersion": EXPECTED_SCHEMA_VERSION,
    }
    parser["Ledger"] = {
        "LoanInterestRate": str(DEFAULT_LOAN_INTEREST_RATE),
        "LowStockThreshold": str(DEFAULT_LOW_STOCK_THRESHOLD),
    }
    config_path.parent.mkdir(parents=True, exist_ok=True)
    with config_path.open("w", encoding="utf-8") as handle:
        parser.write(handle)
    return config_path


def create_data_file(destination: Path, *, overwrite: bool = False) -> Path:
    """Create an empty data file holding every collection.

    When ``overwrite`` is ``False`` (the default) this function raises
    ``FileExistsError`` if the target already exists.
    """

    destination = destination.expanduser().resolve()
    if destination.exists() and not overwrite:
        raise FileExistsError(f"Refusing to overwrite existing data file: {destination}")

    data_manager.save_store(data_manager.create_empty_store(), destination)
    return destination


def run_from_config(config_path: Path, *, overwrite: bool = False) -> Path:
    """Create the data file named by ``config_path``."""

    config_path = config_path.expanduser().resolve()
    parser = data_manager.read_config(config_path)
    settings = data_manager.parse_settings(parser, base_path=config_path.parent)
    return create_data_file(settings.data_file, overwrite=overwrite)


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    """Parse CLI arguments for the setup script."""

    parser = argparse.ArgumentParser(description="Initialize a Shop Ledger data file")
    parser.add_argument(
        "--config",
        default=CONFIG_FILE,
        help="Path to configuration file (default: config.ini)",
    )
    parser.add_argument(
        "--create-config",
        action="store_true",
        help="Write a starter configuration file before creating the data file.",
    )
    parser.add_argument(
        "--shop-name",
        default=DEFAULT_SHOP_NAME,
        help="Shop name written by --create-config.",
    )
    parser.add_argument(
        "--force",
        action="store_true",
        help="Overwrite existing files if they already exist.",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the CLI script."""

    args = parse_args(argv)
    config_path = Path(args.config).expanduser().resolve()

    print("--- Shop Ledger Setup ---")
    print(f"Using configuration: {config_path}")

    try:
        if args.create_config:
            write_config(config_path, shop_name=args.shop_name, overwrite=args.force)
            print(f"Wrote configuration '{config_path}'")
        output_path = run_from_config(config_path, overwrite=args.force)
    except (FileNotFoundError, KeyError, ValueError) as exc:
        print(f"\n[ERROR] {exc}")
        return 1
    except FileExistsError as exc:
        print(f"\n[ERROR] {exc}")
        print("Run with --force to overwrite the existing file if appropriate.")
        return 1
    except (PermissionError, OSError) as exc:
        print(f"\n[ERROR] Unable to write data file: {exc}")
        return 1

    print(f"\n[SUCCESS] Created data file at '{output_path}'.")
    return 0


if __name__ == "__main__":  # pragma: no cover - exercised via manual runs
    sys.exit(main())
