import click
import yaml

from strata.errors import SpecError
from strata.renderers.directory import DirectorySpec, render_directory
from strata.renderers.options import parse_share_options
from strata.renderers.smbconf import render_smb_conf


def _load(path):
    with open(path, "r") as f:
        doc = yaml.safe_load(f) or {}
    # Accept a full manifest as well as a bare spec
    return doc.get("spec", doc) if isinstance(doc, dict) else {}


@click.group()
def render():
    """Render configuration artifacts without touching any host."""
    pass


@render.command("smb")
@click.option("-f", "--file", "path", required=True, type=click.Path(exists=True, dir_okay=False))
def render_smb(path):
    """Render smb.conf for a share."""
    spec = _load(path)
    share_name = spec.get("shareName") or spec.get("name", "")
    share_path = spec.get("path") or spec.get("mountPath") or f"/{spec.get('datasetName', share_name)}"
    try:
        options = parse_share_options(spec.get("options"))
        click.echo(render_smb_conf(share_name, share_path, bool(spec.get("readOnly")), options), nl=False)
    except SpecError as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)


@render.command("directory")
@click.option("-f", "--file", "path", required=True, type=click.Path(exists=True, dir_okay=False))
@click.option("--bind-password", default=None, help="Bind password substituted into sssd.conf.")
def render_directory_cmd(path, bind_password):
    """Render directory.json, smb.conf, krb5.conf and sssd.conf for a directory."""
    try:
        spec = DirectorySpec.model_validate(_load(path))
        artifacts = render_directory(spec, bind_password=bind_password)
    except (SpecError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        raise SystemExit(1)

    for title, body in (
        ("directory.json", artifacts.directory_json),
        ("smb.conf", artifacts.smb_conf),
        ("krb5.conf", artifacts.krb5_conf),
        ("sssd.conf", artifacts.sssd_conf),
    ):
        if body:
            click.echo(f"# --- {title} ---")
            click.echo(body.rstrip("\n"))
    click.echo(f"# hash: {artifacts.hash}")
