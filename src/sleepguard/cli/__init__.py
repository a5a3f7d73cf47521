"""SleepGuard CLI — entry point for local sessions."""

import click

from sleepguard import __version__


@click.group()
@click.version_option(version=__version__, package_name="sleepguard")
def main() -> None:
    """SleepGuard — confidential sleep tracking."""


from .demo_cmd import demo

main.add_command(demo)
