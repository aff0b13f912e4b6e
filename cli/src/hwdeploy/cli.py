"""Main CLI entry point for hwdeploy."""

import click
from .commands import releases, toolchain


@click.group()
@click.version_option(version="1.0.0")
def main():
    """hwdeploy - build, render and release the Hello World service."""
    pass


# Release commands
main.add_command(releases.template)
main.add_command(releases.install)
main.add_command(releases.upgrade)
main.add_command(releases.rollback)
main.add_command(releases.uninstall)
main.add_command(releases.history)
main.add_command(releases.status)

# Toolchain commands
main.add_command(toolchain.build)
main.add_command(toolchain.image_build)
main.add_command(toolchain.cluster_start)
main.add_command(toolchain.image_load)
main.add_command(toolchain.serve)


if __name__ == "__main__":
    main()
