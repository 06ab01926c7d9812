"""
orderseal/cli/orders.py

orderseal hash / sign / check

Order files are YAML or JSON mappings with the Order fields. Addresses must
be quoted in YAML, otherwise 0x-prefixed values parse as integers.

Exit codes:
    0  success (check: signature valid)
    1  check: signature does not match the maker
    2  error  (file missing, unreadable, invalid order)
"""

import json
import sys
from pathlib import Path
from typing import Any, Dict, NoReturn, Optional

import click
import yaml

from orderseal.core.codec import fingerprint, sign_order, verify_signature
from orderseal.core.crypto import MakerKeyManager
from orderseal.core.models import Order, SignedOrder


def _load_mapping(path: str) -> Dict[str, Any]:
    file_path = Path(path)
    if not file_path.exists():
        raise click.ClickException(f"Order file not found: {path}")
    try:
        with open(file_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise click.ClickException(f"Invalid YAML/JSON in {path}: {e}")
    if not isinstance(data, dict):
        raise click.ClickException(f"Order file {path} must contain a mapping")
    return data


def _fail(message: str) -> NoReturn:
    click.echo(f"ERROR: {message}", err=True)
    sys.exit(2)


# ── hash ──────────────────────────────────────────────────────

@click.command(name="hash")
@click.argument("order_file", type=click.Path())
def hash_command(order_file: str) -> None:
    """
    Print the fingerprint of the order in ORDER_FILE.
    """
    try:
        order = Order.from_dict(_load_mapping(order_file))
    except click.ClickException as e:
        _fail(e.message)
    except (TypeError, ValueError) as e:
        _fail(f"Invalid order: {e}")
    click.echo(fingerprint(order))


# ── sign ──────────────────────────────────────────────────────

@click.command(name="sign")
@click.argument("order_file", type=click.Path())
@click.option(
    "--key", "key_path",
    type=click.Path(),
    required=True,
    help="Hex private key file of the order's maker.",
)
@click.option(
    "--output", "output_path",
    type=click.Path(),
    default=None,
    metavar="PATH",
    help="Write the signed order here instead of stdout.",
)
def sign_command(order_file: str, key_path: str, output_path: Optional[str]) -> None:
    """
    Sign the order in ORDER_FILE and emit it as JSON with v, r, s added.

    The key must belong to the order's maker.
    """
    try:
        order = Order.from_dict(_load_mapping(order_file))
        key = MakerKeyManager.from_file(Path(key_path))
    except click.ClickException as e:
        _fail(e.message)
    except (FileNotFoundError, TypeError, ValueError) as e:
        _fail(str(e))

    if key.address != order.maker:
        _fail(f"Key {key.address} is not the order maker {order.maker}")

    signed = SignedOrder(order=order, signature=sign_order(order, key))
    payload = json.dumps(signed.to_dict(), indent=2)

    if output_path:
        Path(output_path).write_text(payload + "\n", encoding="utf-8")
        click.echo(fingerprint(order))
    else:
        click.echo(payload)


# ── check ─────────────────────────────────────────────────────

@click.command(name="check")
@click.argument("order_file", type=click.Path())
@click.option("--quiet", is_flag=True, default=False, help="Exit code only.")
def check_command(order_file: str, quiet: bool) -> None:
    """
    Check that the signature embedded in ORDER_FILE was made by its maker.
    """
    try:
        signed = SignedOrder.from_dict(_load_mapping(order_file))
    except click.ClickException as e:
        _fail(e.message)
    except (KeyError, TypeError, ValueError) as e:
        _fail(f"Invalid signed order: {e}")

    order_hash = fingerprint(signed.order)
    valid = verify_signature(order_hash, signed.signature, signed.order.maker)

    if not quiet:
        status = "VALID" if valid else "INVALID"
        click.echo(f"{status}  {order_hash}  maker={signed.order.maker}")
    sys.exit(0 if valid else 1)
