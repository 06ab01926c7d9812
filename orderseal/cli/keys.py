"""
orderseal keygen: create maker (secp256k1) or journal (Ed25519) keys.
"""

from pathlib import Path

import click

from orderseal.core.crypto import Ed25519KeyManager, MakerKeyManager


@click.command(name="keygen")
@click.argument("path", type=click.Path())
@click.option(
    "--type", "key_type",
    type=click.Choice(["maker", "journal"], case_sensitive=False),
    default="maker",
    show_default=True,
    help="maker: hex secp256k1 key. journal: PEM Ed25519 key.",
)
@click.option("--force", is_flag=True, default=False, help="Overwrite an existing file.")
def keygen_command(path: str, key_type: str, force: bool) -> None:
    """
    Write a new private key to PATH and print its public identity
    (maker address or journal public key hex).
    """
    key_path = Path(path)
    if key_path.exists() and not force:
        raise click.ClickException(f"{path} already exists (use --force to overwrite)")

    try:
        if key_type.lower() == "journal":
            journal_key = Ed25519KeyManager.generate()
            journal_key.save(key_path)
            click.echo(journal_key.public_key_hex)
        else:
            maker_key = MakerKeyManager.generate()
            maker_key.save(key_path)
            click.echo(maker_key.address)
    except RuntimeError as e:
        raise click.ClickException(str(e))
