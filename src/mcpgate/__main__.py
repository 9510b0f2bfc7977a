from mcpgate.cli import cli

cli()
