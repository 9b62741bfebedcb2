from stackctl.cli import cli

cli()
