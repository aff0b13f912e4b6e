"""Thin wrappers around the external build and cluster toolchains."""

import subprocess
import sys
from typing import List

import click
from rich.console import Console

from backend.app.main import serve as serve_app
from ..config import Config

console = Console()


def _run(command: List[str]):
    """Run an external tool, streaming its output; a nonzero exit aborts."""
    console.print(f"[dim]$ {' '.join(command)}[/dim]")
    try:
        result = subprocess.run(command)
    except FileNotFoundError:
        console.print(f"[red]{command[0]} command not found[/red]")
        raise SystemExit(127)
    if result.returncode != 0:
        console.print(f"[red]{command[0]} exited with status {result.returncode}[/red]")
        raise SystemExit(result.returncode)


@click.command()
@click.option("--outdir", default="dist", show_default=True, help="Where to write the wheel.")
def build(outdir):
    """Build the service wheel."""
    _run([sys.executable, "-m", "build", "--wheel", "--outdir", outdir])


@click.command(name="image-build")
@click.option("-t", "--tag", default=None, help="Image reference (default from config).")
@click.option("--context", default=".", show_default=True)
def image_build(tag, context):
    """Build the two-stage container image."""
    config = Config.load()
    _run(["docker", "build", "-t", tag or config.image, context])


@click.command(name="cluster-start")
@click.option("--cpus", default=2, show_default=True)
@click.option("--memory", default="4096", show_default=True, help="Memory in MiB.")
def cluster_start(cpus, memory):
    """Start a local minikube cluster."""
    config = Config.load()
    _run(
        [
            "minikube",
            "start",
            "-p",
            config.minikube_profile,
            f"--cpus={cpus}",
            f"--memory={memory}",
        ]
    )


@click.command(name="image-load")
@click.option("-t", "--tag", default=None, help="Image reference (default from config).")
def image_load(tag):
    """Load the locally built image into the minikube cluster."""
    config = Config.load()
    _run(["minikube", "-p", config.minikube_profile, "image", "load", tag or config.image])


@click.command()
def serve():
    """Run the HTTP service in the foreground."""
    serve_app()
