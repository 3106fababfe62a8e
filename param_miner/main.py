#!/usr/bin/env python3
"""
Param Miner - Hidden HTTP parameter discovery

Main CLI entry point for the application.
"""

import asyncio
import contextlib
import json
import signal
import sys
from pathlib import Path

import click
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from param_miner import __version__
from param_miner.core.config import get_config, reload_config
from param_miner.core.exceptions import ParamMinerError
from param_miner.core.logger import configure_logging, get_logger
from param_miner.guesser import GuesserScan, GuessTarget, ScanReport
from param_miner.guesser.models import Completion

console = Console()
logger = get_logger()

METHOD_FLAGS = {
    'get': 'url_get_request',
    'post': 'url_post_request',
    'xml': 'url_xml_request',
    'json_body': 'url_json_request',
}


@click.group()
@click.version_option(version=__version__)
@click.option('--debug', is_flag=True, help='Enable debug mode')
@click.option('--config-file', type=click.Path(exists=True, dir_okay=False),
              help='Path to a YAML configuration file')
@click.option('--log-level',
              type=click.Choice(['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']),
              default=None, help='Set logging level')
@click.option('--log-file', type=click.Path(), help='Path to log file')
@click.option('--quiet', '-q', is_flag=True, help='Quiet mode (no banner)')
@click.pass_context
def cli(ctx, debug, config_file, log_level, log_file, quiet):
    """Param Miner - discover the hidden parameters an endpoint accepts"""
    ctx.ensure_object(dict)
    ctx.obj['debug'] = debug
    ctx.obj['quiet'] = quiet

    try:
        config = reload_config(config_file) if config_file else get_config()
    except (OSError, ValueError) as e:
        raise click.BadParameter(str(e), param_hint='--config-file')
    if debug:
        config.debug = True
        config.log_level = 'DEBUG'
    ctx.obj['config'] = config

    configure_logging(
        level=log_level or config.log_level,
        log_file=Path(log_file) if log_file else None,
        rich_console=True,
        show_time=debug,
        show_path=debug
    )

    if not quiet:
        display_banner()


def display_banner():
    """Display the Param Miner banner."""
    banner = f"""
[bold cyan]Param Miner[/bold cyan] v{__version__}
[dim]Hidden HTTP parameter discovery[/dim]

[yellow]Use responsibly and only on systems you own or have permission to test[/yellow]
"""
    console.print(Panel(banner, title="Welcome", border_style="blue"))


def parse_headers(headers):
    parsed = {}
    for header in headers:
        if ':' not in header:
            raise click.BadParameter(f"'{header}' is not in 'Name: Value' form", param_hint='--header')
        name, value = header.split(':', 1)
        parsed[name.strip()] = value.strip()
    return parsed


def parse_cookies(cookies):
    if not cookies:
        return None
    jar = {}
    for pair in cookies.split(';'):
        if '=' in pair:
            name, value = pair.split('=', 1)
            jar[name.strip()] = value.strip()
    return jar


@cli.command()
@click.argument('url')
@click.option('--get/--no-get', default=None, help='Guess query string parameters')
@click.option('--post/--no-post', default=None, help='Guess url-encoded body parameters')
@click.option('--xml/--no-xml', default=None, help='Guess XML body parameters')
@click.option('--json/--no-json', 'json_body', default=None, help='Guess JSON body parameters')
@click.option('--wordlist', '-w', type=click.Path(exists=True, dir_okay=False), help='Custom wordlist file')
@click.option('--no-default-wordlist', is_flag=True, help='Do not use the bundled wordlist')
@click.option('--group-size', type=click.IntRange(min=1), help='Initial candidate group size')
@click.option('--threads', '-t', type=click.IntRange(min=1), help='Maximum concurrent requests')
@click.option('--timeout', type=click.FloatRange(min=0, min_open=True), help='Request timeout in seconds')
@click.option('--rate-limit', type=click.FloatRange(min=0), help='Requests per second (0 = unlimited)')
@click.option('--proxy', help='Proxy URL (e.g., http://localhost:8080)')
@click.option('--header', '-H', 'headers', multiple=True, help='Custom header (format: "Name: Value")')
@click.option('--cookies', help='Cookies (format: "name1=value1; name2=value2")')
@click.option('--output', '-o', type=click.Path(dir_okay=False), help='Write results to a JSON file')
@click.pass_context
def guess(ctx, url, get, post, xml, json_body, wordlist, no_default_wordlist, group_size,
          threads, timeout, rate_limit, proxy, headers, cookies, output):
    """Guess the hidden parameters accepted by URL."""
    config = ctx.obj['config']

    guesser = config.guesser.model_dump()
    for flag, value in (('get', get), ('post', post), ('xml', xml), ('json_body', json_body)):
        if value is not None:
            guesser[METHOD_FLAGS[flag]] = value
    if wordlist:
        guesser['use_custom_wordlist'] = True
        guesser['custom_wordlist_path'] = wordlist
    if no_default_wordlist:
        guesser['use_predefined_wordlist'] = False
    if group_size:
        guesser['initial_group_size'] = group_size

    scanning = config.scanning.model_dump()
    if threads:
        scanning['max_concurrent_requests'] = threads
    if timeout:
        scanning['request_timeout'] = timeout
    if rate_limit is not None:
        scanning['rate_limit'] = rate_limit

    security = config.security.model_dump()
    if proxy:
        security['proxy_url'] = proxy

    try:
        run_config = config.model_validate({
            **config.model_dump(),
            'guesser': guesser,
            'scanning': scanning,
            'security': security,
        })
    except ValueError as e:
        console.print(f"[red]Invalid options: {e}[/red]")
        sys.exit(2)

    target = GuessTarget.create(url, parse_headers(headers))
    scan = GuesserScan(target, run_config, cookies=parse_cookies(cookies))

    if not ctx.obj.get('quiet'):
        methods = ', '.join(run_config.guesser.enabled_methods()) or 'none'
        console.print(f"\n[bold green]Guessing parameters of {url} ({methods})[/bold green]\n")

    try:
        report = asyncio.run(run_guess(scan))
    except ParamMinerError as e:
        logger.debug("Scan failed", exc_info=True)
        console.print(f"\n[red]Error during scan: {e}[/red]")
        sys.exit(1)
    except KeyboardInterrupt:
        console.print("\n[yellow]Scan interrupted by user[/yellow]")
        sys.exit(1)

    display_results(report)

    if output:
        save_results(report, output)
        console.print(f"\n[green]Results saved to {output}[/green]")

    if report.stopped_early:
        sys.exit(1)


async def run_guess(scan: GuesserScan) -> ScanReport:
    """Run the scan, turning Ctrl-C into a graceful stop."""
    loop = asyncio.get_running_loop()
    with contextlib.suppress(NotImplementedError):
        loop.add_signal_handler(signal.SIGINT, scan.stop)
    try:
        return await scan.run()
    finally:
        with contextlib.suppress(NotImplementedError):
            loop.remove_signal_handler(signal.SIGINT)


def display_results(report: ScanReport):
    """Display the guessing results in formatted tables."""
    table = Table(title=f"Parameters found on {report.target_url}")
    table.add_column("Method", style="cyan", no_wrap=True)
    table.add_column("Parameter", style="bold white")
    table.add_column("Evidence", style="dim")

    for result in sorted(report.results, key=lambda r: (r.method.value, r.name)):
        table.add_row(result.method.value, result.name, "; ".join(result.reasons))
    console.print(table)

    status = Table(title="Runs")
    status.add_column("Method", style="cyan")
    status.add_column("Completion", style="white")
    status.add_column("Generations", justify="right")
    status.add_column("Requests", justify="right")
    status.add_column("Untested", justify="right")
    status.add_column("Error", style="red")

    colors = {
        Completion.COMPLETE: "green",
        Completion.KILLED: "red",
        Completion.CANCELLED: "yellow",
        Completion.ABORTED: "red",
    }
    for method_report in report.reports.values():
        color = colors[method_report.completion]
        untested = sum(len(gap.names) for gap in method_report.gaps)
        status.add_row(
            method_report.method.value,
            f"[{color}]{method_report.completion.value}[/{color}]",
            str(method_report.generations),
            str(method_report.requests_sent),
            str(untested),
            str(method_report.error or ""),
        )
    console.print(status)


def save_results(report: ScanReport, output_path: str):
    """Save guessing results to a JSON file."""
    output_file = Path(output_path)
    output_file.parent.mkdir(parents=True, exist_ok=True)
    with open(output_file, 'w') as f:
        json.dump(report.to_dict(), f, indent=2)


@cli.command()
@click.pass_context
def config(ctx):
    """Show current configuration."""
    config = ctx.obj['config']

    table = Table(title="Param Miner Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="white")

    table.add_row("App Name", config.app_name)
    table.add_row("Version", config.version)
    table.add_row("Debug Mode", str(config.debug))
    table.add_row("Log Level", config.log_level)
    table.add_row("Max Concurrent Requests", str(config.scanning.max_concurrent_requests))
    table.add_row("Request Timeout", f"{config.scanning.request_timeout}s")
    table.add_row("Rate Limit", f"{config.scanning.rate_limit} req/s" if config.scanning.rate_limit else "unlimited")
    table.add_row("Proxy", config.security.proxy_url or "none")
    table.add_row("Methods", ", ".join(config.guesser.enabled_methods()) or "none")
    table.add_row("Initial Group Size", str(config.guesser.initial_group_size))
    table.add_row("Retry Ceiling", str(config.guesser.retry_ceiling))
    table.add_row("Kill Threshold", str(config.guesser.kill_threshold))
    table.add_row("Control Parameter", f"{config.guesser.control_param}={config.guesser.control_value}")

    console.print(table)


@cli.command()
def version():
    """Show version information."""
    info = f"""
[bold]Param Miner[/bold] v{__version__}

[dim]Hidden HTTP parameter discovery[/dim]

[cyan]Features:[/cyan]
• Query string, form, XML and JSON parameter guessing
• Grouped probing with divide-and-conquer narrowing
• Noise-tolerant response fingerprinting
• Verification of every finding
"""
    console.print(Panel(info, title="Version Information", border_style="blue"))


if __name__ == '__main__':
    cli()
