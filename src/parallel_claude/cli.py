import click

from parallel_claude import __version__
from parallel_claude.error_commands import register_error_commands
from parallel_claude.log_commands import register_log_commands
from parallel_claude.worker_commands import register_worker_commands


@click.group()
@click.version_option(version=__version__, prog_name="parallel-claude")
def cli():
    """Run several coding agents side by side, one clone and terminal tab each."""
    pass


register_worker_commands(cli)
register_error_commands(cli)
register_log_commands(cli)


if __name__ == '__main__':
    cli()
