#!/usr/bin/env python3
"""
TFTP CLI

Command-line interface for the TFTP server and client.

Usage:
    tftp serve --root ./server --port 6969     # Serve a directory
    tftp get 192.168.1.10 cat.txt              # Download a file
    tftp config                                # Show resolved configuration
"""

import asyncio
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.table import Table
from rich.progress import Progress, SpinnerColumn, TextColumn
from rich.panel import Panel
from rich.logging import RichHandler

from .config import EXAMPLE_CONFIG, load_config
from .transfer import TftpServer, download_file

console = Console()


def setup_logging(verbose: bool = False, level: str = 'INFO'):
    """Configure logging with rich output."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else getattr(logging, level.upper(), logging.INFO),
        format="%(message)s",
        handlers=[RichHandler(console=console, show_time=False, show_path=False)]
    )


@click.group()
@click.option('-v', '--verbose', is_flag=True, help='Enable verbose output')
@click.option('--config', 'config_path', type=click.Path(dir_okay=False),
              help='JSON configuration file')
@click.option('--block-size', type=int, help='Payload bytes per DATA packet')
@click.option('--timeout-ms', type=int, help='Retransmission timeout')
@click.option('--max-attempts', type=int, help='Consecutive timeouts before giving up')
@click.pass_context
def cli(ctx, verbose, config_path, block_size, timeout_ms, max_attempts):
    """TFTP - Trivial File Transfer Protocol server and client."""
    config = load_config(Path(config_path) if config_path else None)

    if block_size is not None:
        config.block_size = block_size
    if timeout_ms is not None:
        config.timeout_ms = timeout_ms
    if max_attempts is not None:
        config.max_attempts = max_attempts

    setup_logging(verbose, config.log_level)

    try:
        settings = config.transfer_settings()
    except ValueError as e:
        raise click.BadParameter(str(e))

    ctx.ensure_object(dict)
    ctx.obj['config'] = config
    ctx.obj['settings'] = settings


@cli.command()
@click.option('--host', help='Listen address')
@click.option('--port', type=int, help='Listen port')
@click.option('--root', type=click.Path(file_okay=False), help='Directory to serve')
@click.option('--max-sessions', type=int, help='Concurrent transfers allowed')
@click.pass_context
def serve(ctx, host, port, root, max_sessions):
    """Serve files from a directory."""
    config = ctx.obj['config']
    host = host or config.host
    port = port if port is not None else config.port
    root = Path(root) if root else config.root_dir
    max_sessions = max_sessions or config.max_sessions

    root.mkdir(parents=True, exist_ok=True)

    async def run():
        server = TftpServer(
            root=root,
            host=host,
            port=port,
            settings=ctx.obj['settings'],
            max_sessions=max_sessions,
        )
        try:
            await server.start()

            bound_host, bound_port = server.address
            console.print(Panel.fit(
                f"[bold green]TFTP Server Running[/bold green]\n\n"
                f"Address: [cyan]{bound_host}:{bound_port}[/cyan]\n"
                f"Root: [blue]{root.resolve()}[/blue]\n"
                f"Block Size: [yellow]{server.settings.block_size}[/yellow]\n"
                f"Timeout: [yellow]{server.settings.timeout_ms} ms[/yellow] x "
                f"[yellow]{server.settings.max_attempts}[/yellow] attempts",
                title="Server Info"
            ))
            console.print("\n[dim]Press Ctrl+C to stop[/dim]\n")

            await server.serve_forever()
        finally:
            await server.stop()
            stats = server.get_stats()
            console.print(f"[green]Server stopped[/green] "
                          f"[dim]({stats['sessions_completed']} completed, "
                          f"{stats['sessions_failed']} failed, "
                          f"{stats['requests_rejected']} rejected)[/dim]")

    try:
        asyncio.run(run())
    except KeyboardInterrupt:
        console.print("\n[yellow]Shutting down...[/yellow]")
    except PermissionError:
        console.print(f"[red]✗ Permission denied binding port {port}[/red] "
                      f"[dim](ports below 1024 usually need root)[/dim]")
        ctx.exit(1)


@cli.command()
@click.argument('server')
@click.argument('filename')
@click.option('--port', '-p', type=int, help='Server port')
@click.option('--output-dir', '-o', type=click.Path(file_okay=False), help='Output directory')
@click.pass_context
def get(ctx, server, filename, port, output_dir):
    """Download FILENAME from SERVER."""
    config = ctx.obj['config']
    port = port if port is not None else config.port
    output_dir = Path(output_dir) if output_dir else config.output_dir

    async def run():
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            console=console,
        ) as progress:
            task = progress.add_task(f"Requesting {filename}...", total=None)

            def update_progress(bytes_received, blocks):
                progress.update(
                    task,
                    description=f"Downloading... ({blocks} blocks, {format_size(bytes_received)})"
                )

            result = await download_file(
                server,
                filename,
                output_dir=output_dir,
                port=port,
                settings=ctx.obj['settings'],
                progress_callback=update_progress,
                keep_partial=config.keep_partial,
            )
            progress.update(task, description="Done!" if result.success else "Failed")

        return result

    result = asyncio.run(run())

    if result.success:
        console.print(Panel.fit(
            f"[bold green]Download Complete[/bold green]\n\n"
            f"File: [cyan]{filename}[/cyan]\n"
            f"Saved to: [blue]{output_dir / Path(filename).name}[/blue]\n"
            f"Size: [yellow]{result.bytes_transferred:,} bytes[/yellow]\n"
            f"Blocks: [yellow]{result.blocks}[/yellow]\n"
            f"Time: [yellow]{result.duration_s:.2f} s[/yellow] "
            f"([yellow]{format_size(result.throughput_bytes_per_sec)}/s[/yellow])",
            title="Downloaded File"
        ))
    else:
        console.print(f"\n[red]✗ Download failed ({result.reason.value}): {result.message}[/red]")
        ctx.exit(1)


@cli.command('config')
@click.option('--example', is_flag=True, help='Print an example config file and exit')
@click.pass_context
def show_config(ctx, example):
    """Show the resolved configuration."""
    if example:
        click.echo(EXAMPLE_CONFIG.strip())
        return

    config = ctx.obj['config']

    table = Table(title="TFTP Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="yellow")

    for key, value in config.to_dict().items():
        table.add_row(key, str(value))

    console.print(table)


def format_size(bytes_count: int) -> str:
    """Format bytes as human-readable size."""
    for unit in ['B', 'KB', 'MB', 'GB']:
        if bytes_count < 1024:
            return f"{bytes_count:.1f} {unit}"
        bytes_count /= 1024
    return f"{bytes_count:.1f} TB"


if __name__ == '__main__':
    cli()
