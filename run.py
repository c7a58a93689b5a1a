#!/usr/bin/env python3
"""
TryHarder - Probe-and-Classify Recon Suite

Main entry point for the command line.
"""

import click
from dotenv import load_dotenv

from tryharder.config import BaseConfig

# Load environment variables
load_dotenv()

SEVERITY_COLORS = {
    'critical': 'red',
    'high': 'red',
    'medium': 'yellow',
    'low': 'green',
    'info': 'blue',
}


def parse_option(raw: str):
    """Turn ``key=value`` into a tool option; ``true``/``false`` become booleans."""
    if '=' not in raw:
        raise click.BadParameter(f"Expected key=value, got '{raw}'")
    key, value = raw.split('=', 1)
    lowered = value.strip().lower()
    if lowered in ('true', 'yes', 'on'):
        return key.strip(), True
    if lowered in ('false', 'no', 'off'):
        return key.strip(), False
    return key.strip(), value.replace('\\n', '\n')


@click.group()
@click.version_option(version=BaseConfig.APP_VERSION, prog_name=BaseConfig.APP_NAME)
def cli():
    """TryHarder - Reconnaissance and vulnerability probing suite"""
    pass


@cli.command()
def tools():
    """List available tools."""
    from tryharder.tools import available_tools

    for tool in available_tools():
        click.secho(f"  {tool['id']:<12}", fg='cyan', nl=False)
        click.echo(f" {tool['description']} (target: {tool['target']})")


@cli.command()
@click.argument('tool')
@click.argument('target')
@click.option('--option', '-o', 'raw_options', multiple=True, help='Tool option as key=value')
@click.option('--output', help='Output file for JSON report')
@click.option('--verbose', '-v', is_flag=True, help='Verbose output')
def scan(tool, target, raw_options, output, verbose):
    """Run one tool against a target."""
    import asyncio
    import json

    from tryharder.engine import ConfigurationError, ProbeEngine, UnknownToolError
    from tryharder.tools import get_tool

    try:
        tool_instance = get_tool(tool)
    except UnknownToolError:
        raise click.BadParameter(f"Unknown tool '{tool}'. Run 'tools' to list them.", param_hint='TOOL')

    options = dict(parse_option(raw) for raw in raw_options)
    options[tool_instance.target_option] = target

    click.echo(f"""
    ╔═══════════════════════════════════════════════════════════╗
    ║   TryHarder - {tool_instance.title:<44}║
    ╚═══════════════════════════════════════════════════════════╝

    Target: {target}
    """)

    def on_progress(data):
        if verbose:
            click.echo(f"  [phase {data['phase']}] {data['dispatched']} requests, {data['findings']} findings")

    def on_finding(finding):
        if verbose:
            color = SEVERITY_COLORS.get(finding.severity.value, 'white')
            click.secho(f"  [+] {finding.severity.value.upper()} - {finding.title}", fg=color)

    engine = ProbeEngine(progress_callback=on_progress, finding_callback=on_finding)

    try:
        run = asyncio.run(engine.run(tool_instance, options))
    except ConfigurationError as e:
        raise click.UsageError(str(e))

    click.echo("-" * 50)
    click.echo(f"Status: {run.status.value}")
    if run.message:
        click.echo(f"Message: {run.message}")
    if run.error:
        click.secho(f"Error: {run.error}", fg='red')

    for category, findings in run.grouped().items():
        if category:
            click.secho(f"\n{category}", bold=True)
        for finding in findings:
            color = SEVERITY_COLORS.get(finding.severity.value, 'white')
            click.secho(f"  [{finding.severity.value.upper():<8}] ", fg=color, nl=False)
            click.echo(f"{finding.title}: {finding.value}")
            if finding.subtitle:
                click.echo(f"             {finding.subtitle}")

    if output:
        with open(output, 'w') as f:
            json.dump(run.to_dict(), f, indent=2)
        click.echo(f"\nReport saved to: {output}")

    # Print summary
    counts = run.summary()
    click.echo("\n" + "=" * 50)
    click.echo("FINDINGS SUMMARY")
    click.echo("=" * 50)
    click.secho(f"  Critical: {counts['critical']}", fg='red')
    click.secho(f"  High:     {counts['high']}", fg='red')
    click.secho(f"  Medium:   {counts['medium']}", fg='yellow')
    click.secho(f"  Low:      {counts['low']}", fg='green')
    click.secho(f"  Info:     {counts['info']}", fg='blue')
    click.echo("-" * 50)
    click.echo(f"  Total:    {counts['total']}")
    click.echo(f"  Requests: {run.dispatched}")


if __name__ == '__main__':
    cli()
