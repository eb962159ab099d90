import asyncio

import click
import yaml

from strata.operator.driver import Driver
from strata.operator.manager import build_controllers
from strata.operator.models import record_from_manifest
from strata.operator.store import MemorySecretStore, MemoryStore


def load_manifests(path):
    """Seed an in-memory store and secret store from a multi-document YAML file."""
    store = MemoryStore()
    secrets = MemorySecretStore()
    with open(path, "r") as f:
        documents = [doc for doc in yaml.safe_load_all(f) if doc]

    for doc in documents:
        if doc.get("kind") == "Secret":
            meta = doc.get("metadata") or {}
            data = dict(doc.get("stringData") or doc.get("data") or {})
            secrets.put(meta.get("namespace", "default"), meta["name"], {k: str(v) for k, v in data.items()})
            continue
        try:
            store.create(record_from_manifest(doc))
        except ValueError as e:
            raise click.ClickException(f"{path}: {e}")
    return store, secrets


@click.command()
@click.option("-f", "--file", "path", required=True, type=click.Path(exists=True, dir_okay=False),
              help="YAML file holding the desired-state records.")
@click.option("--once", is_flag=True, help="Reconcile every record once and exit.")
def operator(path, once):
    """Run the reconcilers against records loaded from a file."""
    store, secrets = load_manifests(path)
    driver = Driver(store, build_controllers(store, secrets), secrets=secrets)

    if once:
        count = driver.run_once()
        for kind in driver.reconcilers:
            for record in store.list(kind):
                phase = record.status.phase.value if record.status.phase else "-"
                message = f" ({record.status.message})" if record.status.message else ""
                click.echo(f"{kind} {record.namespace}/{record.name}: {phase}{message}")
        click.echo(f"{count} records reconciled.")
        return

    try:
        asyncio.run(driver.run())
    except KeyboardInterrupt:
        click.echo("Stopped.")
