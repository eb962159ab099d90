import logging

import click

from strata.cli.operator import operator
from strata.cli.render import render
from strata.config.settings import config


@click.group()
@click.option("--log-level", default=None, help="Logging level (defaults to STRATA_LOG_LEVEL).")
@click.pass_context
def main(ctx, log_level):
    """Strata ZFS storage CLI"""
    ctx.ensure_object(dict)
    logging.basicConfig(
        level=(log_level or config.log_level).upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )


main.add_command(operator)
main.add_command(render)


@main.command()
@click.option("--host", default=None, help="The host to bind to.")
@click.option("--port", default=None, type=int, help="The port to bind to.")
def agent(host, port):
    """Run the storage executor HTTP server."""
    import uvicorn

    from strata.api.server import app
    uvicorn.run(app, host=host or config.agent_host, port=port or config.agent_port)
