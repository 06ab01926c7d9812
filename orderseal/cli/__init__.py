"""
orderseal/cli/__init__.py

orderseal CLI: root Click command group.

Registered in pyproject.toml as:

    [project.scripts]
    orderseal = "orderseal.cli:cli"
"""

import logging

import click

from orderseal.cli.keys import keygen_command
from orderseal.cli.orders import check_command, hash_command, sign_command
from orderseal.cli.verify import verify_command


@click.group()
@click.version_option(package_name="orderseal")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging level for orderseal's own log output.",
)
def cli(log_level: str) -> None:
    """
    orderseal: signed-order settlement tooling.

    \b
    Commands:
      hash      Print an order's fingerprint.
      sign      Sign an order with a maker key.
      check     Check a signed order's signature.
      keygen    Create a maker or journal key.
      verify    Verify a signed event journal.

    \b
    Quick start:
      orderseal keygen maker.key
      orderseal sign order.yaml --key maker.key --output signed.json
      orderseal check signed.json && echo "ok"
      orderseal verify .orderseal/journal.jsonl --key-hex <hex>
    """
    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


cli.add_command(hash_command)
cli.add_command(sign_command)
cli.add_command(check_command)
cli.add_command(keygen_command)
cli.add_command(verify_command)
